"""
maybecfg - one template, many gated forms

Write a routine once, declare its contexts (sync, async, ...) with
@maybe(...), and generate one gated copy per context.
"""

__version__ = "0.2.0"
__author__ = "Rudolph Pienaar"
__email__ = "rudolph.pienaar@gmail.com"

from .lib import (
    maybe,
    context,
    maybe_await,
    only,
    remove,
    registry_parse,
    TreeRewriter,
    Emitter,
    emit,
    emit_source,
    source_expand,
    file_expand,
    MaybeError,
    ConfigError,
    RewriteError,
    LOG,
    state_connectToLogger,
)

__all__ = [
    "maybe",
    "context",
    "maybe_await",
    "only",
    "remove",
    "registry_parse",
    "TreeRewriter",
    "Emitter",
    "emit",
    "emit_source",
    "source_expand",
    "file_expand",
    "MaybeError",
    "ConfigError",
    "RewriteError",
    "LOG",
    "state_connectToLogger",
    "__version__",
]
