"""
Context registry tests

Tests parsing of maybe(...) argument lists into ContextRegistry objects:
contexts, predicates, async flags, rename tables and every ConfigError.
"""

import ast

import pytest

from maybecfg.config import appsettings
from maybecfg.lib.registry import registry_parse, template_format
from maybecfg.lib.errors import (
    ConfigError,
    DuplicateContextName,
    EmptyContextSet,
    MalformedContext,
    MalformedRename,
    MissingAsyncFlag,
)


def marker(source: str) -> ast.expr:
    """Parse a maybe(...) expression"""
    return ast.parse(source, mode="eval").body


class TestContexts:
    """Test context declaration and ordering"""

    def test_two_contexts_in_declaration_order(self):
        """Contexts keep the order they were written in"""
        registry = registry_parse(marker('maybe(context("sync"), context("async"))'))

        assert registry.names() == ["sync", "async"]
        assert len(registry) == 2
        assert [ctx.name for ctx in registry] == ["sync", "async"]

    def test_reverse_order_preserved(self):
        """Order is not normalised"""
        registry = registry_parse(marker('maybe(context("async"), context("sync"))'))
        assert registry.names() == ["async", "sync"]

    def test_name_as_keyword(self):
        """context(name=...) is equivalent to the positional form"""
        registry = registry_parse(marker('maybe(context(name="sync"))'))
        assert registry.names() == ["sync"]

    def test_get_by_name(self):
        """Registry lookup by context name"""
        registry = registry_parse(marker('maybe(context("sync"), context("async"))'))

        assert registry.get("async").is_async is True
        assert registry.get("missing") is None

    def test_qualified_markers(self):
        """maybecfg.maybe / maybecfg.context are recognised"""
        registry = registry_parse(marker('maybecfg.maybe(maybecfg.context("sync"))'))
        assert registry.names() == ["sync"]

    def test_disable_allows_no_context(self):
        """A disabled annotation may declare nothing"""
        registry = registry_parse(marker("maybe(disable=True)"))

        assert registry.disable is True
        assert len(registry) == 0


class TestPredicates:
    """Test gate predicate parsing"""

    def test_string_predicate(self):
        """A string is parsed as expression source"""
        registry = registry_parse(marker('maybe(context("sync", when="not ASYNC"))'))
        assert registry.get("sync").predicate_source() == "not ASYNC"

    def test_expression_predicate(self):
        """A bare expression is kept verbatim"""
        registry = registry_parse(marker('maybe(context("async", when=settings.ASYNC))'))
        assert registry.get("async").predicate_source() == "settings.ASYNC"

    def test_compound_predicate(self):
        """Predicates are opaque: any expression passes through"""
        registry = registry_parse(
            marker('maybe(context("sync", when="sys.version_info >= (3, 8) and not ASYNC"))')
        )
        assert (
            registry.get("sync").predicate_source()
            == "sys.version_info >= (3, 8) and not ASYNC"
        )

    def test_missing_predicate_is_ungated(self):
        """No when= leaves the copy ungated"""
        registry = registry_parse(marker('maybe(context("sync"))'))

        assert registry.get("sync").predicate is None
        assert registry.get("sync").predicate_source() is None

    def test_none_predicate_is_ungated(self):
        """when=None is the same as no predicate"""
        registry = registry_parse(marker('maybe(context("sync", when=None))'))
        assert registry.get("sync").predicate is None

    def test_predicate_is_private_copy(self):
        """The registry never shares nodes with the template"""
        call = marker('maybe(context("async", when=ASYNC))')
        registry = registry_parse(call)

        original = call.args[0].keywords[0].value
        assert registry.get("async").predicate is not original
        assert ast.dump(registry.get("async").predicate) == ast.dump(original)


class TestAsyncFlag:
    """Test async flag defaults and overrides"""

    def test_defaults_from_name(self):
        """'async' defaults to async, 'sync' to non-async"""
        registry = registry_parse(marker('maybe(context("sync"), context("async"))'))

        assert registry.get("sync").is_async is False
        assert registry.get("async").is_async is True

    def test_explicit_flag_wins(self):
        """is_async overrides the name default"""
        registry = registry_parse(
            marker('maybe(context("async", is_async=False), context("aio", is_async=True))')
        )

        assert registry.get("async").is_async is False
        assert registry.get("aio").is_async is True

    def test_custom_name_defaults_to_non_async(self):
        """A custom name without a flag is non-async (with a warning)"""
        registry = registry_parse(marker('maybe(context("blocking"))'))
        assert registry.get("blocking").is_async is False

    def test_custom_name_strict_mode(self, monkeypatch):
        """Strict mode requires an explicit flag on custom names"""
        monkeypatch.setattr(appsettings, "strict_mode", True)

        with pytest.raises(MissingAsyncFlag):
            registry_parse(marker('maybe(context("blocking"))'))

    def test_strict_mode_accepts_known_names(self, monkeypatch):
        """Strict mode leaves sync / async untouched"""
        monkeypatch.setattr(appsettings, "strict_mode", True)

        registry = registry_parse(marker('maybe(context("sync"), context("async"))'))
        assert registry.names() == ["sync", "async"]

    def test_configured_async_names(self, monkeypatch):
        """async_context_names extends the async default"""
        monkeypatch.setattr(appsettings, "async_context_names", ["async", "aio"])

        registry = registry_parse(marker('maybe(context("aio"))'))
        assert registry.get("aio").is_async is True

    def test_flag_must_be_bool(self):
        """is_async accepts only True / False"""
        with pytest.raises(MalformedContext):
            registry_parse(marker('maybe(context("aio", is_async="yes"))'))


class TestRenames:
    """Test context-local and global rename tables"""

    def test_local_dict(self):
        """idents={...} on a context"""
        registry = registry_parse(
            marker('maybe(context("sync", idents={"fetch": "fetch_sync", "Client": "SyncClient"}))')
        )
        assert dict(registry.get("sync").renames) == {
            "fetch": "fetch_sync",
            "Client": "SyncClient",
        }

    def test_local_pairs(self):
        """idents=[(a, b), ...] on a context"""
        registry = registry_parse(marker('maybe(context("sync", idents=[("fetch", "fetch_sync")]))'))
        assert dict(registry.get("sync").renames) == {"fetch": "fetch_sync"}

    def test_global_template(self):
        """Global template strings are stored unformatted"""
        registry = registry_parse(
            marker('maybe(context("sync"), context("async"), idents={"fetch": "{name}_{context}"})')
        )
        assert dict(registry.global_renames) == {"fetch": "{name}_{context}"}

    def test_global_per_context(self):
        """Global per-context mapping"""
        registry = registry_parse(
            marker(
                'maybe(context("sync"), context("async"), '
                'idents={"Session": {"sync": "Session", "async": "AsyncSession"}})'
            )
        )
        assert registry.global_renames["Session"] == {"sync": "Session", "async": "AsyncSession"}

    def test_template_format(self):
        """Template expansion with name and context"""
        assert template_format("{name}_{context}", "fetch", "sync") == "fetch_sync"
        assert template_format("Async{name}", "Client", "async") == "AsyncClient"
        assert template_format("plain", "fetch", "sync") == "plain"


class TestConfigErrors:
    """Test malformed maybe(...) argument lists"""

    def test_duplicate_context(self):
        """Two contexts with one name"""
        with pytest.raises(DuplicateContextName):
            registry_parse(marker('maybe(context("sync"), context("sync"))'))

    def test_empty_call(self):
        """maybe() without contexts"""
        with pytest.raises(EmptyContextSet):
            registry_parse(marker("maybe()"))

    def test_bare_marker(self):
        """@maybe without a call declares nothing"""
        with pytest.raises(EmptyContextSet):
            registry_parse(marker("maybe"))

    def test_only_options(self):
        """Shared options alone declare no context"""
        with pytest.raises(EmptyContextSet):
            registry_parse(marker('maybe(idents={"a": "b"})'))

    def test_non_identifier_rename(self):
        """Rename targets must be identifiers"""
        with pytest.raises(MalformedRename):
            registry_parse(marker('maybe(context("sync", idents={"fetch": "fetch-sync"}))'))

    def test_non_literal_rename(self):
        """Rename targets must be string literals"""
        with pytest.raises(MalformedRename):
            registry_parse(marker('maybe(context("sync", idents={"fetch": NAME}))'))

    def test_keyword_rename(self):
        """Python keywords are not valid identifiers"""
        with pytest.raises(MalformedRename):
            registry_parse(marker('maybe(context("sync", idents={"fetch": "class"}))'))

    def test_repeated_rename(self):
        """One logical name renamed twice in a table"""
        with pytest.raises(MalformedRename):
            registry_parse(
                marker('maybe(context("sync", idents=[("a", "b"), ("a", "c")]))')
            )

    def test_bad_pair(self):
        """Pair lists need two-element entries"""
        with pytest.raises(MalformedRename):
            registry_parse(marker('maybe(context("sync", idents=[("a", "b", "c")]))'))

    def test_global_unknown_context(self):
        """Per-context mapping naming an undeclared context"""
        with pytest.raises(MalformedRename):
            registry_parse(
                marker('maybe(context("sync"), idents={"Session": {"aio": "AioSession"}})')
            )

    def test_global_template_not_identifier(self):
        """A template must yield an identifier for every context"""
        with pytest.raises(MalformedRename):
            registry_parse(
                marker('maybe(context("sync"), idents={"fetch": "{name}-{context}"})')
            )

    def test_positional_not_context(self):
        """Positional arguments must be context(...) calls"""
        with pytest.raises(MalformedContext):
            registry_parse(marker('maybe("sync")'))

    def test_unknown_context_option(self):
        """Unknown keywords on context(...)"""
        with pytest.raises(MalformedContext):
            registry_parse(marker('maybe(context("sync", colour="red"))'))

    def test_unknown_maybe_option(self):
        """Unknown keywords on maybe(...)"""
        with pytest.raises(MalformedContext):
            registry_parse(marker('maybe(context("sync"), mode="fast")'))

    def test_unparsable_predicate(self):
        """A predicate string must be an expression"""
        with pytest.raises(MalformedContext):
            registry_parse(marker('maybe(context("sync", when="not ("))'))

    def test_missing_name(self):
        """context() needs a name"""
        with pytest.raises(MalformedContext):
            registry_parse(marker('maybe(context(when="X"))'))

    def test_non_literal_name(self):
        """Context names must be string literals"""
        with pytest.raises(MalformedContext):
            registry_parse(marker("maybe(context(NAME))"))

    def test_starred_contexts(self):
        """Contexts cannot be unpacked from a variable"""
        with pytest.raises(MalformedContext):
            registry_parse(marker("maybe(*CONTEXTS)"))

    def test_errors_share_base(self):
        """Every registry error is a ConfigError"""
        with pytest.raises(ConfigError):
            registry_parse(marker('maybe(context("sync"), context("sync"))'))


class TestErrorLocation:
    """Test error attribution to source spans"""

    def test_duplicate_points_at_second_name(self):
        """Location is the offending argument"""
        source = 'maybe(\n    context("sync"),\n    context("sync"),\n)'
        with pytest.raises(DuplicateContextName) as excinfo:
            registry_parse(marker(source), "client.py")

        error = excinfo.value
        assert error.filename == "client.py"
        assert error.lineno == 3
        assert error.col_offset == 12
        assert str(error).startswith("client.py:3:13: ")

    def test_location_describe(self):
        """Rendered report carries the source line and a caret"""
        source = 'maybe(\n    context("sync"),\n    context("sync"),\n)'
        with pytest.raises(DuplicateContextName) as excinfo:
            registry_parse(marker(source), "client.py")

        report = excinfo.value.location_describe(source)
        lines = report.split("\n")
        assert lines[1] == '        context("sync"),'
        assert lines[2] == "    " + " " * 12 + "^"
