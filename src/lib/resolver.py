"""
Identifier resolution and substitution

IdentifierResolver answers "what is this logical name called in context X";
IdentifierSubstituter applies those answers to every identifier position of
a rewritten copy, so a renamed function is renamed at its definition and at
every self-reference in the same pass.

Lookup order for one context:
1. context-local idents
2. global idents (template string or per-context mapping)
3. non-async contexts only: async protocol dunders to their sync forms
4. identity
"""

import ast
from typing import Dict, Optional

from ..config import appsettings
from ..models.context import Context, ContextRegistry
from .log import LOG
from .registry import template_format


SYNC_DUNDER_RENAMES: Dict[str, str] = {
    "__aenter__": "__enter__",
    "__aexit__": "__exit__",
    "__aiter__": "__iter__",
    "__anext__": "__next__",
    "StopAsyncIteration": "StopIteration",
}


class IdentifierResolver:
    """
    Resolves logical identifiers for one context

    Each name is resolved once and memoised, so every occurrence in a copy
    receives the same emitted name.
    """

    def __init__(self, registry: ContextRegistry, context: Context) -> None:
        self.registry = registry
        self.context = context
        self.resolved: Dict[str, str] = {}

    def resolve(self, name: str) -> str:
        """
        Emitted identifier for a logical one

        Example:
            >>> resolver.resolve("fetch")     # idents={"fetch": "fetch_sync"}
            'fetch_sync'
            >>> resolver.resolve("session")   # no rule
            'session'
        """
        if name not in self.resolved:
            self.resolved[name] = self.rule_apply(name)
        return self.resolved[name]

    def rule_apply(self, name: str) -> str:
        local = self.context.renames.get(name)
        if local is not None:
            return local

        rule = self.registry.global_renames.get(name)
        if isinstance(rule, dict):
            if self.context.name in rule:
                return rule[self.context.name]
        elif rule is not None:
            return template_format(rule, name, self.context.name)

        if not self.context.is_async and appsettings.sync_dunder_renames:
            return SYNC_DUNDER_RENAMES.get(name, name)
        return name

    def table(self) -> Dict[str, str]:
        """Every declared rename as it applies to this context (identity rules omitted)"""
        names = list(self.registry.global_renames) + list(self.context.renames)
        table = {}
        for name in names:
            emitted = self.resolve(name)
            if emitted != name:
                table[name] = emitted
        return table


class IdentifierSubstituter(ast.NodeTransformer):
    """
    Rename identifiers in place throughout one copy

    Covers names, attributes, def/class names, parameters, keyword
    arguments, import aliases, global/nonlocal declarations, exception and
    pattern captures, and string forward references in annotations.
    """

    def __init__(self, resolver: IdentifierResolver) -> None:
        super().__init__()
        self.resolver = resolver

    def visit_Name(self, node: ast.Name) -> ast.Name:
        node.id = self.resolver.resolve(node.id)
        return node

    def visit_Attribute(self, node: ast.Attribute) -> ast.Attribute:
        self.generic_visit(node)
        node.attr = self.resolver.resolve(node.attr)
        return node

    def visit_FunctionDef(self, node: ast.FunctionDef) -> ast.FunctionDef:
        return self.function_rename(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> ast.AsyncFunctionDef:
        return self.function_rename(node)

    def function_rename(self, node):
        node.name = self.resolver.resolve(node.name)
        self.generic_visit(node)
        node.returns = self.annotation_rename(node.returns)
        return node

    def visit_ClassDef(self, node: ast.ClassDef) -> ast.ClassDef:
        node.name = self.resolver.resolve(node.name)
        self.generic_visit(node)
        return node

    def visit_arg(self, node: ast.arg) -> ast.arg:
        node.arg = self.resolver.resolve(node.arg)
        self.generic_visit(node)
        node.annotation = self.annotation_rename(node.annotation)
        return node

    def visit_AnnAssign(self, node: ast.AnnAssign) -> ast.AnnAssign:
        self.generic_visit(node)
        node.annotation = self.annotation_rename(node.annotation)
        return node

    def visit_keyword(self, node: ast.keyword) -> ast.keyword:
        if node.arg is not None:
            node.arg = self.resolver.resolve(node.arg)
        self.generic_visit(node)
        return node

    def visit_alias(self, node: ast.alias) -> ast.alias:
        node.name = ".".join(self.resolver.resolve(part) for part in node.name.split("."))
        if node.asname is not None:
            node.asname = self.resolver.resolve(node.asname)
        return node

    def visit_Global(self, node: ast.Global) -> ast.Global:
        node.names = [self.resolver.resolve(name) for name in node.names]
        return node

    def visit_Nonlocal(self, node: ast.Nonlocal) -> ast.Nonlocal:
        node.names = [self.resolver.resolve(name) for name in node.names]
        return node

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> ast.ExceptHandler:
        if node.name is not None:
            node.name = self.resolver.resolve(node.name)
        self.generic_visit(node)
        return node

    def visit_MatchAs(self, node: ast.MatchAs) -> ast.MatchAs:
        if node.name is not None:
            node.name = self.resolver.resolve(node.name)
        self.generic_visit(node)
        return node

    def visit_MatchStar(self, node: ast.MatchStar) -> ast.MatchStar:
        if node.name is not None:
            node.name = self.resolver.resolve(node.name)
        return node

    def annotation_rename(self, annotation: Optional[ast.expr]) -> Optional[ast.expr]:
        """Rename inside a string forward reference ("Session" -> "AsyncSession")"""
        if not (isinstance(annotation, ast.Constant) and isinstance(annotation.value, str)):
            return annotation
        try:
            parsed = ast.parse(annotation.value, mode="eval")
        except SyntaxError:
            return annotation
        renamed = self.visit(parsed)
        annotation.value = ast.unparse(renamed)
        return annotation


def identifiers_substitute(tree: ast.AST, resolver: IdentifierResolver) -> ast.AST:
    """
    Apply a resolver to every identifier of a tree (in place)

    Args:
        tree: Copy to rename; must not be shared with other contexts
        resolver: Resolver of the copy's context

    Returns:
        The same tree, renamed
    """
    table = resolver.table()
    if table:
        LOG(f"[{resolver.context.name}] renames: {table}", level=3)
    return IdentifierSubstituter(resolver).visit(tree)
