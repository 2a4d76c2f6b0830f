"""
Small syntax-tree helpers shared by the registry, rewriter and expander
"""

import ast
import io
import tokenize
from typing import List, Optional

from ..config import appsettings


def dotted_name(node: ast.AST) -> Optional[str]:
    """
    Dotted name of a Name / Attribute chain, or None for anything else

    Example:
        >>> dotted_name(ast.parse("pytest.mark.asyncio", mode="eval").body)
        'pytest.mark.asyncio'
    """
    parts: List[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    return ".".join(reversed(parts))


def marker_is(node: ast.AST, marker: str) -> bool:
    """
    Check if an expression refers to one of our markers

    Accepts the bare name (maybe) and the name qualified through the marker
    module (maybecfg.maybe).

    Args:
        node: Expression to check (typically Call.func or a decorator)
        marker: Marker name from settings (e.g., appsettings.maybe_marker)
    """
    name = dotted_name(node)
    if name is None:
        return False
    return name == marker or name == f"{appsettings.marker_module}.{marker}"


def markerCall_is(node: ast.AST, marker: str) -> bool:
    """Check if node is a call of the given marker"""
    return isinstance(node, ast.Call) and marker_is(node.func, marker)


def decorator_isMarker(node: ast.expr, marker: str) -> bool:
    """Check if a decorator is the marker, called or bare"""
    return markerCall_is(node, marker) or marker_is(node, marker)


def decorator_name(node: ast.expr) -> Optional[str]:
    """Dotted name of a decorator, looking through a call (@a.b(...) -> 'a.b')"""
    if isinstance(node, ast.Call):
        node = node.func
    return dotted_name(node)


def body_fill(body: List[ast.stmt], owner: ast.AST) -> List[ast.stmt]:
    """
    Return body, or a single pass statement when body is empty

    Python cannot close a block without a statement; an elided sub-block
    that empties its enclosing body leaves exactly one pass behind.
    """
    if body:
        return body
    return [ast.copy_location(ast.Pass(), owner)]


def string_literals(args: List[ast.expr]) -> Optional[List[str]]:
    """Values of a list of string constants, or None if any is not one"""
    values = []
    for arg in args:
        if not (isinstance(arg, ast.Constant) and isinstance(arg.value, str)):
            return None
        values.append(arg.value)
    return values


def text_indent(text: str, prefix: str) -> str:
    """
    Indent rendered source without altering multi-line string literals

    Lines that continue a string token opened on an earlier line (docstrings
    rendered by ast.unparse) are left as they are; blank lines stay blank.

    Example:
        >>> text_indent("def f():\\n    return 1", "    ")
        '    def f():\\n        return 1'
    """
    if not prefix:
        return text

    continued = set()
    tokens = tokenize.generate_tokens(io.StringIO(text).readline)
    for token in tokens:
        if token.type == tokenize.STRING and token.end[0] > token.start[0]:
            continued.update(range(token.start[0] + 1, token.end[0] + 1))

    lines = text.split("\n")
    return "\n".join(
        line if (number in continued or not line.strip()) else prefix + line
        for number, line in enumerate(lines, start=1)
    )
