"""
Error taxonomy for maybecfg

Two families of fatal errors, both attributed to the source span where they
were detected:

- ConfigError: the maybe(...) argument list is malformed or contradictory
- RewriteError: the annotated item, or a marker inside it, cannot be rewritten

An error aborts the expansion of the whole module; no partial output is ever
produced.
"""

import ast
from typing import Optional


class MaybeError(Exception):
    """Base class for every expansion failure"""

    def __init__(
        self,
        message: str,
        node: Optional[ast.AST] = None,
        filename: str = "<template>",
    ) -> None:
        """
        Args:
            message: Human-readable error description
            node: AST node the error is attributed to (provides line/column)
            filename: Template file name used in the rendered location
        """
        self.message = message
        self.filename = filename
        self.lineno: Optional[int] = getattr(node, "lineno", None)
        self.col_offset: Optional[int] = getattr(node, "col_offset", None)
        super().__init__(self.location_prefix() + message)

    def location_prefix(self) -> str:
        """Render 'file:line:col: ' (or 'file: ' when no span is known)"""
        if self.lineno is None:
            return f"{self.filename}: "
        return f"{self.filename}:{self.lineno}:{(self.col_offset or 0) + 1}: "

    def location_describe(self, source: str) -> str:
        """
        Report the error with source context

        Args:
            source: Full text of the template the error was raised for

        Returns:
            Multi-line message with the offending source line and a caret

        Example output:
            pkg/client.py:12:5: await outside of a function
                await session.close()
                ^
        """
        text = str(self)
        if self.lineno is None:
            return text

        lines = source.splitlines()
        if not 0 < self.lineno <= len(lines):
            return text

        line = lines[self.lineno - 1]
        caret = " " * (self.col_offset or 0) + "^"
        return f"{text}\n    {line}\n    {caret}"


class ConfigError(MaybeError):
    """Malformed or contradictory maybe(...) arguments"""
    pass


class DuplicateContextName(ConfigError):
    """Two contexts in one maybe(...) share a name"""
    pass


class EmptyContextSet(ConfigError):
    """maybe(...) declares no context at all"""
    pass


class MalformedRename(ConfigError):
    """An idents entry is not a pair of identifiers"""
    pass


class MalformedContext(ConfigError):
    """A context(...) block, or another maybe(...) argument, does not parse"""
    pass


class MissingAsyncFlag(ConfigError):
    """Strict mode: a custom-named context relies on the implicit async flag"""
    pass


class RewriteError(MaybeError):
    """The annotated item or one of its markers cannot be rewritten"""
    pass


class UnsupportedShape(RewriteError):
    """The annotated item is not a function, class or maybe-block"""
    pass


class MisplacedSuspension(RewriteError):
    """A suspension point appears where no function can own it"""
    pass


class UnknownContext(RewriteError):
    """A conditional sub-block names a context that was never declared"""
    pass


class MalformedMarker(RewriteError):
    """A marker call has the wrong arity, arguments or position"""
    pass
