"""
Terminal rendering of generated modules

Used by the CLI's --show option to print expansions with Pygments syntax
highlighting. Marker calls are emphasised when the template side is shown,
so authors can see which lines the expander acts on.
"""

from pygments import highlight
from pygments.filters import NameHighlightFilter
from pygments.formatters import TerminalFormatter
from pygments.lexers import PythonLexer
from pygments.token import Name

from ..config import appsettings


def lexer_make(markers: bool = False) -> PythonLexer:
    """
    Python lexer, optionally with our marker names highlighted

    Args:
        markers: Tag maybe / context / maybe_await / only / remove as
                 Name.Decorator so they stand out
    """
    lexer = PythonLexer()
    if markers:
        lexer.add_filter(
            NameHighlightFilter(names=appsettings.markerNames_get(), tokentype=Name.Decorator)
        )
    return lexer


def source_highlight(source: str, colour: bool = True, markers: bool = False) -> str:
    """
    Render Python source for a terminal

    Args:
        source: Module text
        colour: Emit ANSI colour codes; plain text when False
        markers: Emphasise marker names (template side)

    Returns:
        Text ready to print
    """
    if not colour:
        return source
    return highlight(source, lexer_make(markers), TerminalFormatter())
