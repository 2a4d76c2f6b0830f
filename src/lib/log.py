"""
Centralized logging using Loguru with context-aware verbosity.

LOG() respects the verbosity of the ProgramState bound to the current
context, so library modules (registry, rewriter, emitter, expander) log
without having state passed to them. Outside a CLI run no state is bound
and LOG() stays silent unless MAYBECFG_DEBUG_MODE is set.

Usage:
    from maybecfg.lib.log import LOG, state_connectToLogger

    # At start of pipeline function:
    state_connectToLogger(state)

    # Anywhere in that context:
    LOG("Expanded client.py", level=1)
    LOG("Emitted 2 copies: ['sync', 'async']", level=2)
    LOG("[sync] renames: {'fetch': 'fetch_sync'}", level=3)

Warnings that must reach the user regardless of verbosity go straight to
loguru's logger.warning().
"""

import sys
from contextvars import ContextVar
from typing import Any, Optional

from loguru import logger

from ..config import appsettings

# Context variable to hold current ProgramState
_program_state: ContextVar[Optional[Any]] = ContextVar('program_state', default=None)

# Configure loguru with maybecfg-specific format
logger_format = (
    "<green>{time:HH:mm:ss}</green> │ "
    "<level>{level: <7}</level> │ "
    "<cyan>{module: <10}</cyan>:<cyan>{line: <4}</cyan> ║ "
    "<level>{message}</level>"
)

logger.remove()  # Remove default handler
logger.add(sys.stderr, format=logger_format, level="DEBUG")


def state_connectToLogger(state: Any) -> None:
    """
    Connect a ProgramState to the logging context.

    Args:
        state: ProgramState instance with verbosity attribute
    """
    _program_state.set(state)


def LOG(message: str, level: int = 1, **kwargs: Any) -> None:
    """
    Log message if current state's verbosity allows.

    Args:
        message: Log message to display
        level: Minimum verbosity level required (1=normal, 2=verbose, 3=trace)
        **kwargs: Additional loguru metadata

    Verbosity levels:
        1 = One line per expanded item (default)
        2 = Per-context and per-file details (-v)
        3 = Rename tables and elided sub-blocks (-vv)
    """
    state = _program_state.get()

    if appsettings.debug_mode:
        logger.opt(depth=1).debug(message, **kwargs)
    elif state and hasattr(state, 'verbosity') and state.verbosity >= level:
        logger.opt(depth=1).info(message, **kwargs)
