"""
Context registry parser

Turns the argument list of a maybe(...) marker into a ContextRegistry:

    @maybe(
        context("sync", when="not ASYNC", idents={"fetch": "fetch_sync"}),
        context("async", when=ASYNC, is_async=True),
        idents={"Session": {"sync": "Session", "async": "AsyncSession"},
                "fetch": "{name}_{context}"},
    )

Positional arguments declare contexts in emission order. Keyword arguments
carry settings shared by every context:

- idents: global default renames (template string or per-context mapping)
- disable: emit the item unchanged instead of expanding it

Each context(...) accepts:

- name (first positional or name=): unique context name
- when: gate predicate, as expression source in a string or a bare expression
- is_async: bool literal; defaults from the context name
- idents: context-local renames, overriding the global ones
- decorators: decorators appended to the copy
- drop_decorators: decorator names removed from the copy

Parsing is pure: the syntax tree given in is never modified and every
expression kept in the registry is a private copy.
"""

import ast
import copy
import keyword
from typing import Any, Dict, List, Optional, Tuple

from ..config import appsettings
from ..models.context import Context, ContextRegistry, GlobalRename
from .errors import (
    DuplicateContextName,
    EmptyContextSet,
    MalformedContext,
    MalformedRename,
    MissingAsyncFlag,
)
from .log import LOG, logger
from .syntax import dotted_name, markerCall_is


CONTEXT_OPTIONS = ("name", "when", "is_async", "idents", "decorators", "drop_decorators")
REGISTRY_OPTIONS = ("idents", "disable")


def identifier_is(name: Any) -> bool:
    """Check if a value is a usable Python identifier (not a keyword)"""
    return isinstance(name, str) and name.isidentifier() and not keyword.iskeyword(name)


class RegistryBuilder:
    """
    Accumulates contexts and shared settings while walking maybe(...) args

    Errors are raised as soon as they are detected, attributed to the
    offending argument.
    """

    def __init__(self, filename: str = "<template>") -> None:
        self.filename = filename
        self.contexts: List[Context] = []
        self.global_renames: Dict[str, GlobalRename] = {}
        self.global_renames_node: Optional[ast.expr] = None
        self.disable = False

    def context_add(self, node: ast.expr) -> None:
        """
        Parse one context(...) argument and append it

        Raises:
            MalformedContext: If node is not a well-formed context(...) call
            DuplicateContextName: If the name is already declared
            MissingAsyncFlag: Strict mode, custom name without is_async
        """
        if not markerCall_is(node, appsettings.context_marker):
            raise MalformedContext(
                f"expected {appsettings.context_marker}(...) as positional argument",
                node, self.filename,
            )
        assert isinstance(node, ast.Call)

        options = self.keywords_collect(node, CONTEXT_OPTIONS)

        if len(node.args) > 1:
            raise MalformedContext(
                "context takes the name as its only positional argument",
                node.args[1], self.filename,
            )
        if node.args and "name" in options:
            raise MalformedContext("context name given twice", options["name"], self.filename)
        name_node = node.args[0] if node.args else options.get("name")
        if name_node is None:
            raise MalformedContext("context needs a name", node, self.filename)
        name = self.literal_get(name_node, str, "context name must be a string literal")
        if not name:
            raise MalformedContext("context name must not be empty", name_node, self.filename)

        for existing in self.contexts:
            if existing.name == name:
                raise DuplicateContextName(
                    f"context '{name}' declared twice", name_node, self.filename
                )

        ctx = Context(
            name=name,
            predicate=self.predicate_parse(options.get("when")),
            is_async=self.asyncFlag_resolve(name, options.get("is_async"), node),
            renames=self.renames_parse(options["idents"]) if "idents" in options else {},
            decorators=self.decorators_parse(options.get("decorators")),
            drop_decorators=self.dropDecorators_parse(options.get("drop_decorators")),
        )
        self.contexts.append(ctx)
        LOG(
            f"Context '{ctx.name}': async={ctx.is_async}, "
            f"when={ctx.predicate_source()}, renames={dict(ctx.renames)}",
            level=3,
        )

    def option_set(self, kw: ast.keyword) -> None:
        """Apply one keyword argument of maybe(...)"""
        if kw.arg is None or kw.arg not in REGISTRY_OPTIONS:
            raise MalformedContext(
                f"unknown {appsettings.maybe_marker}() option: {kw.arg or '**'}",
                kw.value, self.filename,
            )
        if kw.arg == "disable":
            self.disable = self.literal_get(kw.value, bool, "disable must be True or False")
        else:
            self.global_renames = self.renames_parse(kw.value, allow_per_context=True)
            self.global_renames_node = kw.value

    def build(self, node: ast.AST) -> ContextRegistry:
        """
        Validate cross-argument invariants and freeze the registry

        Args:
            node: The maybe(...) expression, for error attribution

        Raises:
            EmptyContextSet: No context declared (and not disabled)
            MalformedRename: A global rename targets an unknown context or
                             does not yield an identifier
        """
        if not self.contexts and not self.disable:
            raise EmptyContextSet(
                f"{appsettings.maybe_marker}() declares no context", node, self.filename
            )
        self.globalRenames_validate()
        return ContextRegistry(
            contexts=tuple(self.contexts),
            global_renames=self.global_renames,
            disable=self.disable,
        )

    def keywords_collect(self, call: ast.Call, allowed: Tuple[str, ...]) -> Dict[str, ast.expr]:
        """Map keyword names to values, rejecting unknown and repeated ones"""
        options: Dict[str, ast.expr] = {}
        for kw in call.keywords:
            if kw.arg is None or kw.arg not in allowed:
                raise MalformedContext(
                    f"unknown context option: {kw.arg or '**'}", kw.value, self.filename
                )
            if kw.arg in options:
                raise MalformedContext(f"option '{kw.arg}' given twice", kw.value, self.filename)
            options[kw.arg] = kw.value
        return options

    def literal_get(self, node: ast.expr, kind: type, message: str) -> Any:
        """Value of a constant of the given type, else MalformedContext"""
        if isinstance(node, ast.Constant) and type(node.value) is kind:
            return node.value
        raise MalformedContext(message, node, self.filename)

    def predicate_parse(self, node: Optional[ast.expr]) -> Optional[ast.expr]:
        """
        Gate predicate as an expression tree

        A string is parsed as expression source; None (or a missing when=)
        leaves the copy ungated; any other expression is kept verbatim.
        """
        if node is None:
            return None
        if isinstance(node, ast.Constant) and node.value is None:
            return None
        return self.expression_parse(node)

    def expression_parse(self, node: ast.expr) -> ast.expr:
        """Private copy of an expression; a string constant is parsed as source"""
        if isinstance(node, ast.Constant) and isinstance(node.value, str):
            try:
                parsed = ast.parse(node.value.strip(), mode="eval").body
            except SyntaxError as e:
                raise MalformedContext(
                    f"{node.value!r} is not an expression: {e.msg}", node, self.filename
                )
            return parsed
        return copy.deepcopy(node)

    def asyncFlag_resolve(self, name: str, node: Optional[ast.expr], owner: ast.AST) -> bool:
        """
        Explicit is_async flag, or the default inferred from the name

        Names listed in settings.async_context_names default to async; every
        other name defaults to non-async. Names outside both the async and
        the sync lists warn, or fail in strict mode.
        """
        if node is not None:
            return self.literal_get(node, bool, "is_async must be True or False")

        if name in appsettings.async_context_names:
            return True
        if name not in appsettings.sync_context_names:
            message = f"context '{name}' has no is_async flag, assuming non-async"
            if appsettings.strict_mode:
                raise MissingAsyncFlag(message, owner, self.filename)
            logger.warning(message)
        return False

    def renames_parse(self, node: ast.expr, allow_per_context: bool = False) -> Dict[str, Any]:
        """
        Parse an idents table

        Accepts a dict literal {"logical": "emitted"} or a list/tuple of
        ("logical", "emitted") pairs. With allow_per_context, a value may
        also be a template string or a {context: "emitted"} dict.

        Raises:
            MalformedRename: If an entry does not parse as identifier pairs
        """
        pairs: List[Tuple[ast.expr, ast.expr]] = []
        if isinstance(node, ast.Dict):
            for key, value in zip(node.keys, node.values):
                if key is None:
                    raise MalformedRename("idents cannot use ** unpacking", value, self.filename)
                pairs.append((key, value))
        elif isinstance(node, (ast.List, ast.Tuple)):
            for elt in node.elts:
                if not (isinstance(elt, (ast.Tuple, ast.List)) and len(elt.elts) == 2):
                    raise MalformedRename("idents entries must be pairs", elt, self.filename)
                pairs.append((elt.elts[0], elt.elts[1]))
        else:
            raise MalformedRename("idents must be a dict or a list of pairs", node, self.filename)

        renames: Dict[str, Any] = {}
        for key, value in pairs:
            logical = self.renameIdent_get(key)
            if logical in renames:
                raise MalformedRename(f"'{logical}' renamed twice", key, self.filename)
            if allow_per_context and isinstance(value, ast.Dict):
                renames[logical] = self.perContext_parse(value)
            elif allow_per_context:
                renames[logical] = self.renameTemplate_get(value)
            else:
                renames[logical] = self.renameIdent_get(value)
        return renames

    def perContext_parse(self, node: ast.Dict) -> Dict[str, str]:
        """Parse a {context name: identifier} mapping of a global rename"""
        mapping: Dict[str, str] = {}
        for key, value in zip(node.keys, node.values):
            if not (isinstance(key, ast.Constant) and isinstance(key.value, str) and key.value):
                raise MalformedRename("expected a context name string", key or value, self.filename)
            if key.value in mapping:
                raise MalformedRename(f"context '{key.value}' listed twice", key, self.filename)
            mapping[key.value] = self.renameIdent_get(value)
        return mapping

    def renameIdent_get(self, node: ast.expr) -> str:
        """Identifier held by a string constant, else MalformedRename"""
        if isinstance(node, ast.Constant) and identifier_is(node.value):
            return node.value
        raise MalformedRename("expected an identifier string", node, self.filename)

    def renameTemplate_get(self, node: ast.expr) -> str:
        """String constant holding an identifier or a {name}/{context} template"""
        if isinstance(node, ast.Constant) and isinstance(node.value, str) and node.value:
            return node.value
        raise MalformedRename("expected an identifier or template string", node, self.filename)

    def globalRenames_validate(self) -> None:
        """Check global renames against the declared contexts"""
        node = self.global_renames_node
        names = [ctx.name for ctx in self.contexts]
        for logical, rule in self.global_renames.items():
            if isinstance(rule, dict):
                for ctx_name in rule:
                    if ctx_name not in names:
                        raise MalformedRename(
                            f"rename of '{logical}' targets unknown context '{ctx_name}'",
                            node, self.filename,
                        )
                continue
            for ctx_name in names:
                emitted = template_format(rule, logical, ctx_name)
                if not identifier_is(emitted):
                    raise MalformedRename(
                        f"rename of '{logical}' yields {emitted!r} for context '{ctx_name}', "
                        "which is not an identifier",
                        node, self.filename,
                    )

    def decorators_parse(self, node: Optional[ast.expr]) -> Tuple[ast.expr, ...]:
        """Decorators to append: a list of expressions or expression strings"""
        if node is None:
            return ()
        if not isinstance(node, (ast.List, ast.Tuple)):
            raise MalformedContext("decorators must be a list", node, self.filename)
        decorators = []
        for elt in node.elts:
            if isinstance(elt, ast.Constant) and isinstance(elt.value, str):
                decorators.append(self.expression_parse(elt))
            else:
                decorators.append(copy.deepcopy(elt))
        return tuple(decorators)

    def dropDecorators_parse(self, node: Optional[ast.expr]) -> frozenset:
        """Decorator names to drop: strings or dotted names"""
        if node is None:
            return frozenset()
        if not isinstance(node, (ast.List, ast.Tuple)):
            raise MalformedContext("drop_decorators must be a list", node, self.filename)
        names = set()
        for elt in node.elts:
            if isinstance(elt, ast.Constant) and isinstance(elt.value, str):
                names.add(elt.value)
                continue
            name = dotted_name(elt)
            if name is None:
                raise MalformedContext("expected a decorator name", elt, self.filename)
            names.add(name)
        return frozenset(names)


def template_format(rule: str, logical: str, context_name: str) -> str:
    """
    Expand a global rename template for one context

    Example:
        >>> template_format("{name}_{context}", "fetch", "sync")
        'fetch_sync'
    """
    try:
        return rule.format(name=logical, context=context_name)
    except (KeyError, IndexError, ValueError):
        return rule


def registry_parse(node: ast.expr, filename: str = "<template>") -> ContextRegistry:
    """
    Parse a maybe marker into a ContextRegistry

    Args:
        node: The maybe(...) call, or a bare maybe reference (which declares
              no context and is rejected)
        filename: Template file name for error locations

    Returns:
        ContextRegistry with contexts in declaration order

    Raises:
        ConfigError: DuplicateContextName, EmptyContextSet, MalformedRename,
                     MalformedContext or MissingAsyncFlag

    Example:
        >>> call = ast.parse('maybe(context("sync"), context("async"))', mode="eval").body
        >>> registry_parse(call).names()
        ['sync', 'async']
    """
    builder = RegistryBuilder(filename)
    if isinstance(node, ast.Call):
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                raise MalformedContext("contexts cannot use * unpacking", arg, filename)
            builder.context_add(arg)
        for kw in node.keywords:
            builder.option_set(kw)
    registry = builder.build(node)
    LOG(f"Parsed {len(registry)} contexts: {registry.names()}", level=2)
    return registry
