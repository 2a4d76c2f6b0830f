"""
Application settings and configuration

Uses pydantic-settings for type-safe configuration via environment variables.
All settings use MAYBECFG_ prefix (e.g., MAYBECFG_STRICT_MODE=true).

Settings can also be loaded from a .env file in the project root.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application configuration via environment variables.

    Environment variables use MAYBECFG_ prefix.

    Examples:
        MAYBECFG_MARKER_MODULE=mylib.codegen
        MAYBECFG_STRICT_MODE=true
        MAYBECFG_ASYNC_CONTEXT_NAMES='["async", "aio"]'
    """

    model_config = SettingsConfigDict(
        env_prefix="MAYBECFG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Marker recognition
    marker_module: str = Field(
        default="maybecfg",
        description="Module the markers are imported from (qualified uses like maybecfg.maybe are recognised)",
    )

    maybe_marker: str = Field(
        default="maybe",
        description="Name of the decorator / with-block marker that declares the contexts",
    )

    context_marker: str = Field(
        default="context",
        description="Name of the call declaring one context inside maybe(...)",
    )

    await_marker: str = Field(
        default="maybe_await",
        description="Name of the call marking a suspension point in a sync-style template",
    )

    only_marker: str = Field(
        default="only",
        description="Name of the conditional sub-block marker keeping content for the named contexts",
    )

    remove_marker: str = Field(
        default="remove",
        description="Name of the conditional sub-block marker dropping content for the named contexts",
    )

    # Context configuration
    async_context_names: List[str] = Field(
        default_factory=lambda: ["async"],
        description="Context names whose async flag defaults to true when not given explicitly",
    )

    sync_context_names: List[str] = Field(
        default_factory=lambda: ["sync"],
        description="Context names whose async flag defaults to false without a warning",
    )

    sync_dunder_renames: bool = Field(
        default=True,
        description="Rename async protocol dunders (__aenter__ etc.) to their sync forms in non-async contexts",
    )

    # Expansion configuration
    strict_mode: bool = Field(
        default=False,
        description="Strict mode: treat warnings (e.g. implicit async flag on custom context) as errors",
    )

    debug_mode: bool = Field(
        default=False,
        description="Enable debug output during expansion",
    )

    generated_header: str = Field(
        default="",
        description="Comment block prepended to every generated module ({source} is replaced by the template path)",
    )

    # CLI configuration
    default_pattern: str = Field(
        default="**/*.py",
        description="Glob used to discover template files below the input directory",
    )

    def markerNames_get(self) -> List[str]:
        """
        All marker names, in a stable order.

        Example:
            >>> AppSettings().markerNames_get()
            ['maybe', 'context', 'maybe_await', 'only', 'remove']
        """
        return [
            self.maybe_marker,
            self.context_marker,
            self.await_marker,
            self.only_marker,
            self.remove_marker,
        ]

    def header_make(self, source: str) -> str:
        """
        Render the generated-module header for a template path.

        Args:
            source: Path (or any label) of the template the module came from

        Returns:
            Header text ending with a newline, or "" when no header is configured
        """
        if not self.generated_header:
            return ""
        header = self.generated_header.replace("{source}", source)
        return header if header.endswith("\n") else header + "\n"


# Singleton instance - import this in your code
appsettings = AppSettings()
