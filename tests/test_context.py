from __future__ import annotations

from pathlib import Path

import click
import pytest

from lockkeeper.config import LockKeeperConfig
from lockkeeper.context import LockKeeperContext, pass_context


@pytest.mark.unit
class TestLockKeeperContext:
    """Tests for LockKeeperContext."""

    def test_default_initialization(self) -> None:
        ctx = LockKeeperContext()

        assert ctx.config_path is None
        assert ctx.verbose == 0
        assert ctx.color is True
        assert ctx.config is None

    def test_get_config_falls_back_to_defaults(self) -> None:
        """Test get_config builds and caches a default config."""
        ctx = LockKeeperContext()

        config = ctx.get_config()

        assert config == LockKeeperConfig()
        assert ctx.get_config() is config

    def test_get_config_returns_loaded_config(self) -> None:
        ctx = LockKeeperContext()
        loaded = LockKeeperConfig(prefer_locked=False, source_path=Path("x.toml"))
        ctx.config = loaded

        assert ctx.get_config() is loaded

    def test_slots_prevents_arbitrary_attributes(self) -> None:
        ctx = LockKeeperContext()

        with pytest.raises(AttributeError):
            ctx.registry = "value"  # type: ignore


@pytest.mark.unit
class TestPassContextDecorator:
    """Tests for pass_context decorator."""

    def test_injects_existing_context(self) -> None:
        @click.command()
        @pass_context
        def command(ctx: LockKeeperContext) -> LockKeeperContext:
            return ctx

        click_ctx = click.Context(click.Command("test"))
        lockkeeper_ctx = LockKeeperContext()
        click_ctx.obj = lockkeeper_ctx

        assert click_ctx.invoke(command) is lockkeeper_ctx

    def test_creates_context_when_missing(self) -> None:
        @click.command()
        @pass_context
        def command(ctx: LockKeeperContext) -> LockKeeperContext:
            return ctx

        click_ctx = click.Context(click.Command("test"))

        result = click_ctx.invoke(command)

        assert isinstance(result, LockKeeperContext)
        assert result.get_config().lockfile_name == "package-lock.json"
