"""
Conditional sub-block tests

Tests only(...) / remove(...) in statement, decorator and expression form,
pass filling of emptied bodies, and selector errors.
"""

import ast
import textwrap

import pytest

from maybecfg.lib.registry import registry_parse
from maybecfg.lib.rewriter import TreeRewriter
from maybecfg.lib.errors import MalformedMarker, UnknownContext


def render(source: str, name: str) -> str:
    """Rewrite a decorated template for one context and render it back"""
    template = ast.parse(textwrap.dedent(source)).body[0]
    registry = registry_parse(template.decorator_list[0])
    rewritten = TreeRewriter(registry, registry.get(name)).rewrite(template)
    return ast.unparse(ast.Module(body=rewritten.statements, type_ignores=[]))


class TestStatementForm:
    """Test with only(...) / with remove(...) blocks"""

    TEMPLATE = """
    @maybe(context("sync"), context("async"))
    def run():
        with only("async"):
            setup_loop()
        work()
        with remove("async"):
            cleanup()
    """

    def test_sync(self):
        """only drops, remove keeps"""
        assert render(self.TEMPLATE, "sync") == "def run():\n    work()\n    cleanup()"

    def test_async(self):
        """only keeps, remove drops"""
        assert render(self.TEMPLATE, "async") == "async def run():\n    setup_loop()\n    work()"

    def test_several_names(self):
        """A selector may name several contexts"""
        source = """
        @maybe(context("sync"), context("async"), context("trio", is_async=True))
        def run():
            with only("async", "trio"):
                enter_loop()
            work()
        """
        assert "enter_loop()" in render(source, "trio")
        assert "enter_loop()" in render(source, "async")
        assert "enter_loop()" not in render(source, "sync")

    def test_nested_selectors(self):
        """Selectors nest"""
        source = """
        @maybe(context("sync"), context("async"), context("trio", is_async=True))
        def run():
            with remove("sync"):
                with only("trio"):
                    trio_setup()
                common_async()
        """
        assert render(source, "trio") == "async def run():\n    trio_setup()\n    common_async()"
        assert render(source, "async") == "async def run():\n    common_async()"
        assert render(source, "sync") == "def run():\n    pass"

    def test_emptied_body_gets_pass(self):
        """A body left empty receives a single pass"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            with only("async"):
                work()
        """
        assert render(source, "sync") == "def run():\n    pass"

    def test_emptied_if_branch(self):
        """Inner blocks are filled too"""
        source = """
        @maybe(context("sync"), context("async"))
        def run(flag):
            if flag:
                with only("async"):
                    work()
            return flag
        """
        assert render(source, "sync") == "def run(flag):\n    if flag:\n        pass\n    return flag"

    def test_emptied_try_finally(self):
        """finally blocks are filled too"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            try:
                work()
            finally:
                with only("async"):
                    close()
        """
        text = render(source, "sync")
        assert "finally:\n        pass" in text


class TestDecoratorForm:
    """Test @only(...) / @remove(...) on members"""

    TEMPLATE = """
    @maybe(context("sync"), context("async"))
    class Client:
        @only("async")
        async def aclose(self):
            await self.pool.close()

        @remove("async")
        def close(self):
            self.pool.close()

        def size(self):
            return 1
    """

    def test_sync(self):
        """Async-only members elided from the sync copy"""
        text = render(self.TEMPLATE, "sync")

        assert "aclose" not in text
        assert "    def close(self):" in text
        assert "    def size(self):" in text

    def test_async(self):
        """Sync-only members elided from the async copy"""
        text = render(self.TEMPLATE, "async")

        assert "    async def aclose(self):" in text
        assert "def close(" not in text
        assert "@only" not in text

    def test_other_decorators_kept(self):
        """Only the selector is removed from a kept member"""
        source = """
        @maybe(context("sync"), context("async"))
        class Client:
            @property
            @only("sync")
            def closed(self):
                return True
        """
        text = render(source, "sync")
        assert "    @property\n    def closed(self):" in text

    def test_all_members_elided(self):
        """A class emptied by selectors receives pass"""
        source = """
        @maybe(context("sync"), context("async"))
        class Client:
            @only("async")
            async def aclose(self):
                pass
        """
        assert render(source, "sync") == "class Client:\n    pass"


class TestExpressionForm:
    """Test only(..., value) / remove(..., value) elements"""

    def test_call_arguments(self):
        """Positional and keyword arguments"""
        source = """
        @maybe(context("sync"), context("async"))
        def fetch(url):
            return request(url, only("async", loop), timeout=only("sync", 5), stream=remove("sync", True))
        """
        assert render(source, "sync") == "def fetch(url):\n    return request(url, timeout=5)"
        assert (
            render(source, "async")
            == "async def fetch(url):\n    return request(url, loop, stream=True)"
        )

    def test_collection_elements(self):
        """List, tuple and set elements"""
        source = """
        @maybe(context("sync"), context("async"))
        def handlers():
            return merge([base, only("async", aio)], (x, remove("async", y)), {1, only("sync", 2)})
        """
        assert render(source, "sync") == "def handlers():\n    return merge([base], (x, y), {1, 2})"
        assert render(source, "async") == "async def handlers():\n    return merge([base, aio], (x,), {1})"

    def test_unwrapped_value_is_rewritten(self):
        """The kept value goes through the other passes"""
        source = """
        @maybe(context("sync"), context("async"))
        def fetch():
            return gather(only("async", maybe_await(load())))
        """
        assert render(source, "async") == "async def fetch():\n    return gather(await load())"


class TestSelectorErrors:
    """Test malformed selectors"""

    def test_unknown_context(self):
        """Selectors may only name declared contexts"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            with only("trio"):
                work()
        """
        with pytest.raises(UnknownContext) as excinfo:
            render(source, "sync")
        assert "trio" in str(excinfo.value)

    def test_unknown_context_in_elided_copy(self):
        """Unknown names fail for every context, not just the selected one"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            return f(only("sync", "trio", x))
        """
        with pytest.raises(UnknownContext):
            render(source, "async")

    @pytest.mark.parametrize("name", ["sync", "async"])
    def test_unknown_context_inside_dropped_block(self, name):
        """Selectors nested in a block every context drops are still checked"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            with remove("sync", "async"):
                with only("bogus"):
                    work()
            return 1
        """
        with pytest.raises(UnknownContext) as excinfo:
            render(source, name)
        assert "bogus" in str(excinfo.value)

    def test_unknown_context_inside_dropped_member(self):
        """Selectors inside an elided member are still checked"""
        source = """
        @maybe(context("sync"), context("async"))
        class Client:
            @only("async")
            async def aclose(self):
                with only("bogus"):
                    await self.pool.close()
        """
        with pytest.raises(UnknownContext):
            render(source, "sync")

    def test_unknown_context_inside_dropped_element(self):
        """Selectors inside an elided expression element are still checked"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            return f(only("async", g(only("bogus", 1))))
        """
        with pytest.raises(UnknownContext):
            render(source, "sync")

    def test_malformed_selector_inside_dropped_block(self):
        """Malformed selectors in elided code fail too"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            with only("async"):
                with only(NAME):
                    work()
        """
        with pytest.raises(MalformedMarker):
            render(source, "sync")

    def test_non_literal_names(self):
        """Context names must be string literals"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            with only(NAME):
                work()
        """
        with pytest.raises(MalformedMarker):
            render(source, "sync")

    def test_no_names(self):
        """A selector must name a context"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            with only():
                work()
        """
        with pytest.raises(MalformedMarker):
            render(source, "sync")

    def test_expression_without_value(self):
        """Expression form needs a value after the names"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            return f(only("sync"))
        """
        with pytest.raises(MalformedMarker):
            render(source, "sync")

    def test_unsupported_expression_position(self):
        """Expression form outside an argument or collection"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            value = only("sync", 1)
            return value
        """
        with pytest.raises(MalformedMarker):
            render(source, "sync")

    def test_selector_block_with_as(self):
        """Selector blocks bind nothing"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            with only("sync") as selected:
                work()
        """
        with pytest.raises(MalformedMarker):
            render(source, "sync")

    def test_nested_maybe_decorator(self):
        """Annotated items do not nest"""
        source = """
        @maybe(context("sync"), context("async"))
        class Client:
            @maybe(context("sync"))
            def close(self):
                pass
        """
        with pytest.raises(MalformedMarker):
            render(source, "sync")

    def test_nested_maybe_block(self):
        """maybe-blocks do not nest inside items"""
        source = """
        @maybe(context("sync"), context("async"))
        def run():
            with maybe(context("sync")):
                work()
        """
        with pytest.raises(MalformedMarker):
            render(source, "sync")
