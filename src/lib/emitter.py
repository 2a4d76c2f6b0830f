"""
Multi-context emitter

Drives the TreeRewriter once per registered context, gates each copy with
its context's predicate and concatenates the copies in declaration order:

    if not ASYNC:
        def fetch_sync(session):
            return session.get()

    if ASYNC:
        async def fetch_async(session):
            return await session.get()

The emitter never evaluates a predicate; exactly one copy being selected
at import time is up to the predicates the author wrote.
"""

import ast
import copy
from typing import List

from ..models.context import ContextRegistry, RewrittenCopy
from .log import LOG
from .rewriter import TreeRewriter, marker_strip, shape_classify
from .syntax import text_indent


class Emitter:
    """
    Emits every context's copy of annotated items for one registry

    Rendering is deterministic: the same template and registry always yield
    byte-identical text.
    """

    def __init__(self, registry: ContextRegistry, filename: str = "<template>") -> None:
        """
        Args:
            registry: Contexts to emit, in emission order
            filename: Template file name for error locations
        """
        self.registry = registry
        self.filename = filename

    def copies_build(self, template: ast.stmt) -> List[RewrittenCopy]:
        """
        Rewrite the template once per context

        Every copy is built before anything is returned, so a failure in any
        context leaves no partial output behind.
        """
        copies = []
        for ctx in self.registry:
            rewriter = TreeRewriter(self.registry, ctx, self.filename)
            copies.append(rewriter.rewrite(template))
        return copies

    def emit(self, template: ast.stmt) -> List[ast.stmt]:
        """
        Expansion of a template as statements

        Args:
            template: Annotated def / class / maybe-block (not modified)

        Returns:
            One `if <predicate>:` statement per gated context (the bare copy
            for ungated ones), in declaration order. A disabled registry
            yields the template without its marker.
        """
        if self.registry.disable:
            return self.disabled_build(template)

        statements: List[ast.stmt] = []
        for rewritten in self.copies_build(template):
            statements.extend(self.copy_gate(rewritten))
        for stmt in statements:
            ast.fix_missing_locations(stmt)
        return statements

    def emit_source(self, template: ast.stmt, separator: str = "\n\n\n") -> str:
        """
        Expansion of a template as source text

        Args:
            template: Annotated def / class / maybe-block (not modified)
            separator: Text placed between consecutive copies

        Returns:
            Rendered copies, without a trailing newline
        """
        if self.registry.disable:
            return self.statements_render(self.disabled_build(template))

        rendered = [self.copy_render(rewritten) for rewritten in self.copies_build(template)]
        LOG(f"Emitted {len(rendered)} copies: {self.registry.names()}", level=2)
        return separator.join(rendered)

    def copy_gate(self, rewritten: RewrittenCopy) -> List[ast.stmt]:
        """Wrap a copy's statements in its context's gate"""
        predicate = rewritten.context.predicate
        if predicate is None:
            return rewritten.statements
        gate = ast.If(test=copy.deepcopy(predicate), body=rewritten.statements, orelse=[])
        return [ast.copy_location(gate, rewritten.statements[0])]

    def copy_render(self, rewritten: RewrittenCopy) -> str:
        """Render one gated copy"""
        body = self.statements_render(rewritten.statements)
        predicate = rewritten.context.predicate_source()
        if predicate is None:
            return body
        return f"if {predicate}:\n" + text_indent(body, "    ")

    def statements_render(self, statements: List[ast.stmt]) -> str:
        module = ast.Module(body=statements, type_ignores=[])
        return ast.unparse(ast.fix_missing_locations(module))

    def disabled_build(self, template: ast.stmt) -> List[ast.stmt]:
        item = copy.deepcopy(template)
        LOG("Expansion disabled, emitting template unchanged", level=2)
        return marker_strip(item, shape_classify(item, self.filename), self.filename)


def emit(template: ast.stmt, registry: ContextRegistry, filename: str = "<template>") -> List[ast.stmt]:
    """Convenience wrapper: Emitter(registry).emit(template)"""
    return Emitter(registry, filename).emit(template)


def emit_source(template: ast.stmt, registry: ContextRegistry, filename: str = "<template>") -> str:
    """Convenience wrapper: Emitter(registry).emit_source(template)"""
    return Emitter(registry, filename).emit_source(template)
