"""
Tree rewriter

Produces one context's copy of an annotated item. The template is never
touched: every rewrite starts from a deep copy and runs four passes over it:

1. Sub-block selection: only(...) / remove(...) markers are resolved, keeping
   or eliding statements, decorated members and expression elements.
2. Suspension rewriting: async def, await, async for / with and async
   comprehensions are kept (async contexts) or stripped (the rest), and
   maybe_await(x) becomes `await x` or `x`.
3. Decorators: the maybe marker, and any decorator the context drops, are
   removed; the context's own decorators are appended.
4. Identifier substitution (lib.resolver), last, over the fully shaped copy.

Supported shapes (models.context.ItemShape):
- FUNCTION:  def / async def carrying @maybe(...)
- TRAIT, TRAIT_IMPL, INHERENT_IMPL:  class carrying @maybe(...)
- MODULE:  `with maybe(...):` block
Anything else is rejected with UnsupportedShape.

A function is maybe-async when it is written `async def` or its own body
holds a suspension point; only maybe-async functions (and the annotated
function itself) receive `async def` in async contexts.
"""

import ast
import copy
from typing import List, Optional, Set

from ..config import appsettings
from ..models.context import Context, ContextRegistry, ItemShape, RewrittenCopy
from .errors import (
    MalformedMarker,
    MisplacedSuspension,
    UnknownContext,
    UnsupportedShape,
)
from .log import LOG
from .resolver import IdentifierResolver, identifiers_substitute
from .syntax import (
    body_fill,
    decorator_isMarker,
    decorator_name,
    dotted_name,
    markerCall_is,
    string_literals,
)


FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)
TRAIT_BASES = {"Protocol", "ABC"}
TRAIT_METACLASSES = {"ABCMeta"}


def maybeBlock_is(node: ast.AST) -> bool:
    """Check if a statement is a `with maybe(...):` block"""
    return (
        isinstance(node, ast.With)
        and any(markerCall_is(item.context_expr, appsettings.maybe_marker) for item in node.items)
    )


def base_name(node: ast.expr) -> str:
    """Last component of a base class name, looking through Protocol[T] style subscripts"""
    if isinstance(node, ast.Subscript):
        node = node.value
    return (dotted_name(node) or "").rsplit(".", 1)[-1]


def shape_classify(node: ast.AST, filename: str = "<template>") -> ItemShape:
    """
    Classify an annotated item

    Args:
        node: The annotated statement
        filename: Template file name for error locations

    Returns:
        The item's ItemShape

    Raises:
        UnsupportedShape: If node is not a def, class or maybe-block
    """
    if isinstance(node, FUNCTION_NODES):
        return ItemShape.FUNCTION

    if isinstance(node, ast.ClassDef):
        base_names = {base_name(base) for base in node.bases}
        meta_names = {base_name(kw.value) for kw in node.keywords if kw.arg == "metaclass"}
        if base_names & TRAIT_BASES or meta_names & TRAIT_METACLASSES:
            return ItemShape.TRAIT
        if node.bases:
            return ItemShape.TRAIT_IMPL
        return ItemShape.INHERENT_IMPL

    if maybeBlock_is(node):
        return ItemShape.MODULE

    raise UnsupportedShape(
        f"{appsettings.maybe_marker}() cannot expand a {type(node).__name__} item; "
        "expected a function, a class or a with-block",
        node, filename,
    )


class SubBlockSelector(ast.NodeTransformer):
    """
    Resolve only(...) / remove(...) markers for one context

    Statement form:   with only("async"): ...       -> body inlined or elided
    Decorator form:   @only("async") def member     -> member kept or elided
    Expression form:  f(a, only("async", b))        -> element kept or elided
                      (call arguments, keyword values, list/tuple/set items)
    """

    def __init__(self, registry: ContextRegistry, context: Context, filename: str) -> None:
        super().__init__()
        self.known = registry.names()
        self.context = context
        self.filename = filename

    def generic_visit(self, node: ast.AST) -> ast.AST:
        emptied = [
            name for name in ("body", "finalbody")
            if getattr(node, name, None)
        ]
        super().generic_visit(node)
        for name in emptied:
            setattr(node, name, body_fill(getattr(node, name), node))
        return node

    def selector_kind(self, node: ast.AST) -> Optional[str]:
        """'only' / 'remove' if node is a selector marker call"""
        if markerCall_is(node, appsettings.only_marker):
            return "only"
        if markerCall_is(node, appsettings.remove_marker):
            return "remove"
        return None

    def selection_keeps(self, call: ast.Call, names: List[ast.expr]) -> bool:
        """Check a selector's context names and decide for the current context"""
        if not names:
            raise MalformedMarker("selector names no context", call, self.filename)
        values = string_literals(names)
        if values is None:
            raise MalformedMarker("selector context names must be string literals", call, self.filename)
        for value, name_node in zip(values, names):
            if value not in self.known:
                raise UnknownContext(
                    f"selector names unknown context '{value}' (declared: {', '.join(self.known)})",
                    name_node, self.filename,
                )
        if call.keywords:
            raise MalformedMarker("selector takes no keyword arguments", call, self.filename)
        selected = self.context.name in values
        return selected if self.selector_kind(call) == "only" else not selected

    def visit_With(self, node: ast.With):
        kinds = [self.selector_kind(item.context_expr) for item in node.items]
        if any(markerCall_is(item.context_expr, appsettings.maybe_marker) for item in node.items):
            raise MalformedMarker(
                f"nested {appsettings.maybe_marker}() block inside an annotated item",
                node, self.filename,
            )
        if not any(kinds):
            return self.generic_visit(node)

        if len(node.items) != 1 or node.items[0].optional_vars is not None:
            raise MalformedMarker(
                "a selector block must be a plain `with only(...):` statement",
                node, self.filename,
            )
        call = node.items[0].context_expr
        assert isinstance(call, ast.Call)
        if not self.selection_keeps(call, call.args):
            LOG(f"[{self.context.name}] elided block at line {node.lineno}", level=3)
            self.elided_check(node.body)
            return []
        body = []
        for stmt in node.body:
            result = self.visit(stmt)
            if result is None:
                continue
            body.extend(result if isinstance(result, list) else [result])
        return body

    def visit_FunctionDef(self, node):
        return self.member_select(node)

    def visit_AsyncFunctionDef(self, node):
        return self.member_select(node)

    def visit_ClassDef(self, node):
        return self.member_select(node)

    def member_select(self, node):
        kept = []
        selected = True
        for decorator in node.decorator_list:
            if decorator_isMarker(decorator, appsettings.maybe_marker):
                raise MalformedMarker(
                    f"nested @{appsettings.maybe_marker}() inside an annotated item",
                    decorator, self.filename,
                )
            if self.selector_kind(decorator) is None:
                kept.append(decorator)
                continue
            if not self.selection_keeps(decorator, decorator.args):
                selected = False
        node.decorator_list = kept
        if not selected:
            LOG(f"[{self.context.name}] elided member '{node.name}'", level=3)
            self.elided_check([node])
            return None
        return self.generic_visit(node)

    def elided_check(self, nodes: List[ast.AST]) -> None:
        """Visit throwaway copies of elided code so its markers are still checked"""
        for node in nodes:
            self.visit(copy.deepcopy(node))

    def visit_Call(self, node: ast.Call) -> ast.AST:
        if self.selector_kind(node) is not None:
            raise MalformedMarker(
                "selector expression must be a call argument, a keyword value "
                "or a list, tuple or set element",
                node, self.filename,
            )
        if markerCall_is(node, appsettings.maybe_marker):
            raise MalformedMarker(
                f"{appsettings.maybe_marker}() used inside an annotated item", node, self.filename
            )
        node.args = self.elements_select(node.args)
        keywords = []
        for kw in node.keywords:
            value = self.element_select(kw.value)
            if value is not None:
                kw.value = value
                keywords.append(kw)
        node.keywords = keywords
        return self.generic_visit(node)

    def visit_List(self, node: ast.List) -> ast.AST:
        node.elts = self.elements_select(node.elts)
        return self.generic_visit(node)

    def visit_Tuple(self, node: ast.Tuple) -> ast.AST:
        node.elts = self.elements_select(node.elts)
        return self.generic_visit(node)

    def visit_Set(self, node: ast.Set) -> ast.AST:
        node.elts = self.elements_select(node.elts)
        return self.generic_visit(node)

    def elements_select(self, elements: List[ast.expr]) -> List[ast.expr]:
        selected = []
        for element in elements:
            value = self.element_select(element)
            if value is not None:
                selected.append(value)
        return selected

    def element_select(self, element: ast.expr) -> Optional[ast.expr]:
        """Unwrapped element if kept, None if elided, element itself if unmarked"""
        if self.selector_kind(element) is None:
            return element
        assert isinstance(element, ast.Call)
        if len(element.args) < 2:
            raise MalformedMarker(
                "selector expression needs context names followed by a value",
                element, self.filename,
            )
        if not self.selection_keeps(element, element.args[:-1]):
            self.elided_check([element.args[-1]])
            return None
        return element.args[-1]


def suspension_has(node: ast.AST) -> bool:
    """
    Check if a function's own body holds a suspension point

    Nested functions, lambdas and classes are not looked into; they own
    their suspension points.
    """
    pending = list(ast.iter_child_nodes(node))
    while pending:
        child = pending.pop()
        if isinstance(child, FUNCTION_NODES + (ast.Lambda, ast.ClassDef)):
            continue
        if isinstance(child, (ast.Await, ast.AsyncFor, ast.AsyncWith)):
            return True
        if isinstance(child, ast.comprehension) and child.is_async:
            return True
        if markerCall_is(child, appsettings.await_marker):
            return True
        pending.extend(ast.iter_child_nodes(child))
    return False


class SuspensionRewriter(ast.NodeTransformer):
    """
    Keep or strip async markers for one context, keeping them paired

    In async contexts every maybe-async function becomes `async def` and
    maybe_await(x) becomes `await x`. Elsewhere `async def` becomes `def`,
    `await x` and maybe_await(x) become `x`, and async for / with /
    comprehensions become their plain forms.
    """

    def __init__(self, context: Context, root: Optional[ast.AST], filename: str) -> None:
        super().__init__()
        self.context = context
        self.root = root
        self.filename = filename
        self.scopes: List[str] = []

    def scope_require(self, node: ast.AST, what: str) -> None:
        """Raise unless the innermost scope is a function body"""
        if not self.scopes or self.scopes[-1] != "function":
            where = "a lambda" if self.scopes and self.scopes[-1] == "lambda" else (
                "a class body" if self.scopes else "module level"
            )
            raise MisplacedSuspension(f"{what} in {where}", node, self.filename)

    def visit_FunctionDef(self, node):
        return self.function_rewrite(node)

    def visit_AsyncFunctionDef(self, node):
        return self.function_rewrite(node)

    def function_rewrite(self, node):
        maybe_async = (
            node is self.root
            or isinstance(node, ast.AsyncFunctionDef)
            or suspension_has(node)
        )

        # Decorators, defaults and annotations belong to the enclosing scope
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.args = self.visit(node.args)
        if node.returns is not None:
            node.returns = self.visit(node.returns)

        self.scopes.append("function")
        body = []
        for stmt in node.body:
            result = self.visit(stmt)
            if result is None:
                continue
            body.extend(result if isinstance(result, list) else [result])
        node.body = body_fill(body, node)
        self.scopes.pop()

        target = ast.AsyncFunctionDef if self.context.is_async and maybe_async else ast.FunctionDef
        if isinstance(node, target):
            return node
        fields = {name: getattr(node, name, None) for name in target._fields}
        return ast.copy_location(target(**fields), node)

    def visit_Lambda(self, node: ast.Lambda) -> ast.AST:
        self.scopes.append("lambda")
        self.generic_visit(node)
        self.scopes.pop()
        return node

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.AST:
        node.decorator_list = [self.visit(d) for d in node.decorator_list]
        node.bases = [self.visit(b) for b in node.bases]
        node.keywords = [self.visit(k) for k in node.keywords]
        self.scopes.append("class")
        body = []
        for stmt in node.body:
            result = self.visit(stmt)
            if result is None:
                continue
            body.extend(result if isinstance(result, list) else [result])
        node.body = body_fill(body, node)
        self.scopes.pop()
        return node

    def visit_Await(self, node: ast.Await) -> ast.AST:
        self.scope_require(node, "await")
        node.value = self.visit(node.value)
        if self.context.is_async:
            return node
        return node.value

    def visit_Call(self, node: ast.Call) -> ast.AST:
        if not markerCall_is(node, appsettings.await_marker):
            return self.generic_visit(node)

        if len(node.args) != 1 or node.keywords or isinstance(node.args[0], ast.Starred):
            raise MalformedMarker(
                f"{appsettings.await_marker}() takes exactly one positional argument",
                node, self.filename,
            )
        self.scope_require(node, f"{appsettings.await_marker}()")
        value = self.visit(node.args[0])
        if self.context.is_async:
            return ast.copy_location(ast.Await(value=value), node)
        return value

    def visit_AsyncFor(self, node: ast.AsyncFor) -> ast.AST:
        self.scope_require(node, "async for")
        self.generic_visit(node)
        if self.context.is_async:
            return node
        fields = {name: getattr(node, name, None) for name in ast.For._fields}
        return ast.copy_location(ast.For(**fields), node)

    def visit_AsyncWith(self, node: ast.AsyncWith) -> ast.AST:
        self.scope_require(node, "async with")
        self.generic_visit(node)
        if self.context.is_async:
            return node
        fields = {name: getattr(node, name, None) for name in ast.With._fields}
        return ast.copy_location(ast.With(**fields), node)

    def visit_comprehension(self, node: ast.comprehension) -> ast.AST:
        if node.is_async:
            self.scope_require(node.iter, "async comprehension")
            if not self.context.is_async:
                node.is_async = 0
        return self.generic_visit(node)


def decorators_adjust(statements: List[ast.stmt], context: Context) -> None:
    """
    Drop the context's drop_decorators everywhere in the copy and append its
    decorators to each top-level def / class
    """
    if context.drop_decorators:
        for stmt in statements:
            for node in ast.walk(stmt):
                if isinstance(node, FUNCTION_NODES + (ast.ClassDef,)):
                    node.decorator_list = [
                        d for d in node.decorator_list
                        if decorator_name(d) not in context.drop_decorators
                    ]

    if context.decorators:
        for stmt in statements:
            if isinstance(stmt, FUNCTION_NODES + (ast.ClassDef,)):
                stmt.decorator_list.extend(copy.deepcopy(d) for d in context.decorators)


class TreeRewriter:
    """
    Rewrites annotated items for one context

    Example:
        >>> rewriter = TreeRewriter(registry, registry.get("sync"))
        >>> copy = rewriter.rewrite(template)
        >>> ast.unparse(copy.statements[0])
        'def fetch_sync(session):\\n    return session.get()'
    """

    def __init__(self, registry: ContextRegistry, context: Context, filename: str = "<template>") -> None:
        """
        Args:
            registry: Registry the context belongs to (for sub-block names
                      and global renames)
            context: Context to produce copies for
            filename: Template file name for error locations
        """
        self.registry = registry
        self.context = context
        self.filename = filename
        self.resolver = IdentifierResolver(registry, context)

    def rewrite(self, template: ast.stmt) -> RewrittenCopy:
        """
        Produce this context's copy of a template item

        Args:
            template: The annotated def / class / with-block; not modified

        Returns:
            RewrittenCopy holding the rewritten statements

        Raises:
            RewriteError: UnsupportedShape, MisplacedSuspension,
                          UnknownContext or MalformedMarker
        """
        shape = shape_classify(template, self.filename)
        item = copy.deepcopy(template)
        statements = marker_strip(item, shape, self.filename)
        root = statements[0] if shape is ItemShape.FUNCTION else None

        wrapper = ast.Module(body=statements, type_ignores=[])
        SubBlockSelector(self.registry, self.context, self.filename).visit(wrapper)
        SuspensionRewriter(self.context, root, self.filename).visit(wrapper)
        decorators_adjust(wrapper.body, self.context)
        identifiers_substitute(wrapper, self.resolver)

        LOG(
            f"[{self.context.name}] rewrote {shape.value} "
            f"({len(wrapper.body)} statement(s), async={self.context.is_async})",
            level=2,
        )
        return RewrittenCopy(context=self.context, shape=shape, statements=wrapper.body)


def marker_strip(item: ast.stmt, shape: ItemShape, filename: str = "<template>") -> List[ast.stmt]:
    """
    Remove the maybe marker from a copied item (in place)

    Returns:
        Statements making up the item: the def / class itself, or the body
        of a maybe-block

    Raises:
        MalformedMarker: Marker repeated, block with extra items or `as`,
                         or a selector on the item itself
    """
    if shape is ItemShape.MODULE:
        assert isinstance(item, ast.With)
        if len(item.items) != 1 or item.items[0].optional_vars is not None:
            raise MalformedMarker(
                f"a {appsettings.maybe_marker}() block must be a plain "
                f"`with {appsettings.maybe_marker}(...):` statement",
                item, filename,
            )
        return item.body

    assert isinstance(item, FUNCTION_NODES + (ast.ClassDef,))
    decorators = []
    markers: Set[int] = set()
    for index, decorator in enumerate(item.decorator_list):
        if decorator_isMarker(decorator, appsettings.maybe_marker):
            markers.add(index)
        elif markerCall_is(decorator, appsettings.only_marker) or markerCall_is(
            decorator, appsettings.remove_marker
        ):
            raise MalformedMarker(
                "the annotated item itself cannot carry a selector; "
                "declare only the contexts it exists in",
                decorator, filename,
            )
        else:
            decorators.append(decorator)
    if len(markers) > 1:
        raise MalformedMarker(
            f"item carries @{appsettings.maybe_marker}() more than once", item, filename
        )
    item.decorator_list = decorators
    return [item]


def rewrite(template: ast.stmt, registry: ContextRegistry, context: Context,
            filename: str = "<template>") -> RewrittenCopy:
    """Convenience wrapper: TreeRewriter(registry, context).rewrite(template)"""
    return TreeRewriter(registry, context, filename).rewrite(template)
