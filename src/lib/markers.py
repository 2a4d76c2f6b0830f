"""
Runtime definitions of the template markers

Templates import their markers from maybecfg so that the unexpanded source
imports, lints and type-checks cleanly:

    from maybecfg import maybe, context, maybe_await, only

    @maybe(
        context("sync", when="not ASYNC", idents={"fetch": "fetch_sync"}),
        context("async", when="ASYNC", idents={"fetch": "fetch_async"}),
    )
    async def fetch(session, url):
        return await session.get(url)

The expander reads these markers from the syntax tree and never calls them;
the definitions below only let an unexpanded template be imported directly:
decorators and with-blocks are no-ops and maybe_await returns its argument.
"""

from typing import Any, Callable, TypeVar

T = TypeVar("T")


def maybe(*contexts: Any, **options: Any) -> Any:
    """
    Declare the contexts an item is expanded into

    Usable as a decorator on def / async def / class, or as a with-block
    around a group of statements. At runtime the item is returned unchanged.
    """
    return _Passthrough()


def context(name: str, **options: Any) -> Any:
    """Declare one context inside maybe(...)"""
    return (name, options)


def maybe_await(value: T) -> T:
    """Suspension point: awaited in async contexts, a plain call otherwise"""
    return value


def only(*names: Any) -> Any:
    """
    Conditional sub-block kept only for the named contexts

    Forms:
        with only("async"): ...          statements
        @only("async")                   member def / class
        f(a, only("async", b))           expression element (last argument)
    """
    return _selector(names)


def remove(*names: Any) -> Any:
    """Conditional sub-block dropped for the named contexts (inverse of only)"""
    return _selector(names)


def _selector(names: tuple) -> Any:
    # Expression form carries the element as its last argument
    if names and not isinstance(names[-1], str):
        return names[-1]
    return _Passthrough()


class _Passthrough:
    """Identity decorator that also works as a no-op context manager"""

    def __call__(self, item: Callable) -> Callable:
        return item

    def __enter__(self) -> None:
        return None

    def __exit__(self, *exc_info: Any) -> None:
        return None
