"""
Source expander

The macro-expansion boundary: finds every annotated item of a template
module, emits its copies and splices them over the item's source lines.
Everything outside annotated items keeps its original text, comments and
formatting included; marker imports the result no longer uses are dropped.

Annotated items are found at any statement level (module, class bodies,
function bodies, if / try blocks), except inside another annotated item:

    @maybe(...)                     decorator form (def, async def, class)
    def item(): ...

    with maybe(...):                block form (a module of items)
        ...

A maybe(...) call anywhere else is rejected with UnsupportedShape.

Example:
    >>> result = source_expand(open("client_template.py").read(), "client_template.py")
    >>> result.items_expanded, result.copies_emitted
    (3, 6)
"""

import ast
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from ..config import appsettings
from ..models.context import ExpansionResult
from .emitter import Emitter
from .errors import UnsupportedShape
from .log import LOG
from .registry import registry_parse
from .rewriter import FUNCTION_NODES, maybeBlock_is
from .syntax import decorator_isMarker, markerCall_is, text_indent


class SourceExpander:
    """
    Expands one template module

    Attributes:
        source: Template module text
        filename: Name used in error locations and the generated header
        tree: Parsed module
    """

    def __init__(self, source: str, filename: str = "<template>") -> None:
        """
        Args:
            source: Template module text
            filename: Name used in error locations and the generated header

        Raises:
            SyntaxError: If source is not valid Python
        """
        self.source = source
        self.filename = filename
        self.tree = ast.parse(source, filename=filename)

    def expand(self) -> ExpansionResult:
        """
        Expand every annotated item

        Returns:
            ExpansionResult; the source is returned unchanged when the module
            holds no annotated item

        Raises:
            ConfigError, RewriteError: On the first failing item; nothing
                                       is produced in that case
        """
        items = self.items_find()
        self.strayMarkers_reject(items)
        if not items:
            LOG(f"{self.filename}: no annotated items", level=2)
            return ExpansionResult(source=self.source)

        lines = self.source.splitlines(keepends=True)
        replacements: List[Tuple[int, int, str]] = []
        copies = 0

        for item, marker in items:
            registry = registry_parse(marker, self.filename)
            start = self.itemStart_get(item)
            indent = self.indent_get(lines[start - 1])
            separator = "\n\n\n" if not indent else "\n\n"
            text = Emitter(registry, self.filename).emit_source(item, separator)
            replacements.append((start, item.end_lineno, text_indent(text, indent) + "\n"))
            copies += 0 if registry.disable else len(registry)
            LOG(
                f"{self.filename}:{start}: expanded '{self.item_label(item)}' "
                f"into {registry.names()}",
                level=1,
            )

        for start, end, text in sorted(replacements, key=lambda r: r[0], reverse=True):
            lines[start - 1:end] = [text] if text else []

        expanded = self.markerImports_strip("".join(lines))
        header = appsettings.header_make(self.filename)
        return ExpansionResult(
            source=header + expanded,
            items_expanded=len(items),
            copies_emitted=copies,
        )

    def items_find(self) -> List[Tuple[ast.stmt, ast.expr]]:
        """
        Annotated items with their maybe marker, in source order

        Items nested in an annotated item are left for the rewriter, which
        rejects them.
        """
        found: List[Tuple[ast.stmt, ast.expr]] = []

        def walk(node: ast.AST) -> None:
            for child in ast.iter_child_nodes(node):
                marker = self.marker_get(child)
                if marker is not None:
                    found.append((child, marker))
                    continue
                walk(child)

        walk(self.tree)
        return found

    def marker_get(self, node: ast.AST) -> Optional[ast.expr]:
        """The maybe marker annotating a statement, or None"""
        if isinstance(node, FUNCTION_NODES + (ast.ClassDef,)):
            for decorator in node.decorator_list:
                if decorator_isMarker(decorator, appsettings.maybe_marker):
                    return decorator
            return None
        if maybeBlock_is(node):
            assert isinstance(node, ast.With)
            for with_item in node.items:
                if markerCall_is(with_item.context_expr, appsettings.maybe_marker):
                    return with_item.context_expr
        return None

    def strayMarkers_reject(self, items: List[Tuple[ast.stmt, ast.expr]]) -> None:
        """Reject maybe(...) calls that annotate nothing the engine can expand"""
        inside: Set[int] = set()
        for item, _marker in items:
            inside.update(id(node) for node in ast.walk(item))

        for node in ast.walk(self.tree):
            if id(node) in inside:
                continue
            if markerCall_is(node, appsettings.maybe_marker):
                raise UnsupportedShape(
                    f"{appsettings.maybe_marker}() must decorate a def or class, "
                    "or open a with-block",
                    node, self.filename,
                )

    def markerImports_strip(self, expanded: str) -> str:
        """
        Drop marker names the expanded module no longer references

        Only `from <marker module> import ...` statements are touched. A name
        still used after expansion (a disabled item, a helper outside any
        annotated item) stays imported. A block emptied by the removal keeps
        a single pass.
        """
        tree = ast.parse(expanded, filename=self.filename)
        used = {node.id for node in ast.walk(tree) if isinstance(node, ast.Name)}
        markers = set(appsettings.markerNames_get())

        dropped: Dict[int, Tuple[ast.ImportFrom, List[ast.alias]]] = {}
        for node in ast.walk(tree):
            if not isinstance(node, ast.ImportFrom):
                continue
            if node.level or node.module != appsettings.marker_module:
                continue
            kept = [
                alias for alias in node.names
                if alias.name not in markers or (alias.asname or alias.name) in used
            ]
            if len(kept) < len(node.names):
                dropped[id(node)] = (node, kept)
        if not dropped:
            return expanded

        emptied: Set[int] = set()
        for node in ast.walk(tree):
            if isinstance(node, ast.Module):
                continue
            for field in ("body", "orelse", "finalbody"):
                body = getattr(node, field, None)
                if not isinstance(body, list) or not body:
                    continue
                if all(id(stmt) in dropped and not dropped[id(stmt)][1] for stmt in body):
                    emptied.add(id(body[0]))

        lines = expanded.splitlines(keepends=True)
        for node, kept in sorted(dropped.values(), key=lambda d: d[0].lineno, reverse=True):
            indent = self.indent_get(lines[node.lineno - 1])
            if kept:
                statement = ast.ImportFrom(module=node.module, names=kept, level=0)
                text = indent + ast.unparse(statement) + "\n"
            elif id(node) in emptied:
                text = indent + "pass\n"
            else:
                text = ""
            lines[node.lineno - 1:node.end_lineno] = [text] if text else []
            LOG(f"{self.filename}:{node.lineno}: dropped unused marker imports", level=3)
        return "".join(lines)

    def itemStart_get(self, item: ast.stmt) -> int:
        """First source line of an item, decorators included"""
        decorators = getattr(item, "decorator_list", [])
        return min([item.lineno] + [d.lineno for d in decorators])

    def indent_get(self, line: str) -> str:
        return line[: len(line) - len(line.lstrip())]

    def item_label(self, item: ast.stmt) -> str:
        return getattr(item, "name", None) or f"{appsettings.maybe_marker} block"


def source_expand(source: str, filename: str = "<template>") -> ExpansionResult:
    """
    Expand every annotated item of a template module

    Args:
        source: Template module text
        filename: Name used in error locations and the generated header

    Returns:
        ExpansionResult with the generated module text

    Raises:
        SyntaxError: If source is not valid Python
        ConfigError, RewriteError: If an annotated item cannot be expanded
    """
    return SourceExpander(source, filename).expand()


def file_expand(path_in: Path, path_out: Optional[Path] = None) -> ExpansionResult:
    """
    Expand a template file, optionally writing the generated module

    Args:
        path_in: Template file
        path_out: Where to write the result (not written when None)

    Returns:
        ExpansionResult of the template
    """
    source = path_in.read_text(encoding="utf-8")
    result = source_expand(source, str(path_in))
    if path_out is not None:
        path_out.parent.mkdir(parents=True, exist_ok=True)
        path_out.write_text(result.source, encoding="utf-8")
        LOG(f"Wrote {path_out}", level=2)
    return result
