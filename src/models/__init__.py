"""
Models package for maybecfg

Contains data structures and type definitions for the expansion pipeline.
"""

from .state import ProgramState, pipeline
from .context import Context, ContextRegistry, ItemShape, RewrittenCopy, ExpansionResult

__all__ = [
    "ProgramState",
    "pipeline",
    "Context",
    "ContextRegistry",
    "ItemShape",
    "RewrittenCopy",
    "ExpansionResult",
]
