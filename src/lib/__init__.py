"""
maybecfg - one template, many gated forms

Expands annotated Python definitions into one copy per declared context
(typically sync and async), each gated by its own predicate.
"""

__version__ = "0.2.0"
__author__ = "Rudolph Pienaar"
__email__ = "rudolph.pienaar@gmail.com"

from .errors import (
    MaybeError,
    ConfigError,
    DuplicateContextName,
    EmptyContextSet,
    MalformedRename,
    MalformedContext,
    MissingAsyncFlag,
    RewriteError,
    UnsupportedShape,
    MisplacedSuspension,
    UnknownContext,
    MalformedMarker,
)
from .registry import registry_parse
from .resolver import IdentifierResolver
from .rewriter import TreeRewriter, rewrite, shape_classify
from .emitter import Emitter, emit, emit_source
from .expander import SourceExpander, source_expand, file_expand
from .markers import maybe, context, maybe_await, only, remove
from .log import LOG, state_connectToLogger

__all__ = [
    "MaybeError",
    "ConfigError",
    "DuplicateContextName",
    "EmptyContextSet",
    "MalformedRename",
    "MalformedContext",
    "MissingAsyncFlag",
    "RewriteError",
    "UnsupportedShape",
    "MisplacedSuspension",
    "UnknownContext",
    "MalformedMarker",
    "registry_parse",
    "IdentifierResolver",
    "TreeRewriter",
    "rewrite",
    "shape_classify",
    "Emitter",
    "emit",
    "emit_source",
    "SourceExpander",
    "source_expand",
    "file_expand",
    "maybe",
    "context",
    "maybe_await",
    "only",
    "remove",
    "LOG",
    "state_connectToLogger",
    "__version__",
]
