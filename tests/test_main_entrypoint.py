"""
Tests for main.py - Command-line Entry Point

Tests for:
- Logging configuration
- Argument parsing
- Command dispatch against a container
- Error handling and exit codes
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock, mock_open, patch

import pytest
from conftest import FakeResolverPlugin, make_manifest, source

from music_resolver.domain.music.entities import Track
from music_resolver.domain.shared.exceptions import EntityNotFoundError
from music_resolver.main import _run, build_parser, main, setup_logging


class TestLoggingSetup:
    """Tests for logging configuration."""

    def _make_valid_config(self) -> dict:
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "handlers": {},
            "loggers": {"aiosqlite": {"level": "WARNING"}},
            "root": {"level": "INFO", "handlers": []},
        }

    def test_dictconfig_called_when_json_exists(self):
        """Should call dictConfig when logging_config.json exists."""
        config = self._make_valid_config()
        m = mock_open(read_data=json.dumps(config))
        with (
            patch("builtins.open", m),
            patch("logging.config.dictConfig") as mock_dc,
        ):
            setup_logging()

            mock_dc.assert_called_once_with(config)

    def test_fallback_to_basicconfig_when_json_missing(self):
        """Should fallback to basicConfig when logging_config.json is missing."""
        with (
            patch("builtins.open", side_effect=FileNotFoundError),
            patch("logging.basicConfig") as mock_bc,
        ):
            setup_logging()

            mock_bc.assert_called_once()
            assert mock_bc.call_args[1]["level"] == logging.INFO

    def test_fallback_to_basicconfig_when_json_malformed(self):
        """Should fallback to basicConfig when JSON is malformed."""
        m = mock_open(read_data="{invalid json")
        with (
            patch("builtins.open", m),
            patch("logging.basicConfig") as mock_bc,
        ):
            setup_logging()

            mock_bc.assert_called_once()

    def test_root_logger_level_overridden_by_settings(self):
        """Should override root logger level with the provided log_level."""
        m = mock_open(read_data=json.dumps(self._make_valid_config()))
        with (
            patch("builtins.open", m),
            patch("logging.config.dictConfig"),
            patch("logging.getLogger") as mock_get_logger,
        ):
            mock_root = MagicMock()
            mock_get_logger.return_value = mock_root

            setup_logging("DEBUG")

            mock_root.setLevel.assert_called_once_with(logging.DEBUG)


class TestParser:
    """Tests for argument parsing."""

    def test_resolve_arguments(self):
        args = build_parser().parse_args(
            ["resolve", "Radiohead", "Karma Police", "--album", "OK Computer", "--duration", "264", "--force"]
        )

        assert args.action == "resolve"
        assert args.album == "OK Computer"
        assert args.duration == 264.0
        assert args.force is True
        assert args.manifest_dir is None

    def test_manifest_dir(self, tmp_path):
        args = build_parser().parse_args(["-m", str(tmp_path), "resolvers"])
        assert args.manifest_dir == tmp_path

    def test_action_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestRunCommands:
    """Tests for _run against real services."""

    @pytest.fixture
    def container(self, registry, track_resolver):
        container = MagicMock()
        container.resolver_registry = registry
        container.track_resolver = track_resolver
        return container

    async def test_resolve(self, container, registry):
        await registry.load(make_manifest("a"), FakeResolverPlugin(source("Karma Police", duration=264.0)))
        args = build_parser().parse_args(["resolve", "Radiohead", "Karma Police", "--duration", "264"])

        result = await _run(container, args)

        assert result["a"]["confidence"] == 0.95

    async def test_search(self, container, registry):
        found = Track(title="Karma Police", artist="Radiohead")
        await registry.load(make_manifest("a", search=True), FakeResolverPlugin(search_results=[found]))

        result = await _run(container, build_parser().parse_args(["search", "karma"]))

        assert result[0]["title"] == "Karma Police"

    async def test_lookup(self, container, registry):
        found = Track(title="Karma Police", artist="Radiohead")
        await registry.load(
            make_manifest("a", url_lookup=True, url_patterns=("a.com/*",)),
            FakeResolverPlugin(lookup_result=found),
        )

        result = await _run(container, build_parser().parse_args(["lookup", "https://a.com/1"]))

        assert result["resolver_id"] == "a"
        assert await _run(container, build_parser().parse_args(["lookup", "https://b.com/1"])) is None

    async def test_disable_lists_resolvers(self, container, registry):
        await registry.load(make_manifest("a"), FakeResolverPlugin())
        await registry.load(make_manifest("b"), FakeResolverPlugin())

        result = await _run(container, build_parser().parse_args(["disable", "a"]))

        assert [(r["id"], r["active"], r["priority"]) for r in result] == [("a", False, 0), ("b", True, 1)]


class TestMainFunction:
    """Tests for main entry point function."""

    @pytest.fixture(autouse=True)
    def _quiet_logging(self):
        with patch("music_resolver.main.setup_logging"):
            yield

    def test_main_prints_json(self, capsys):
        with patch("music_resolver.main.run_command", new=AsyncMock(return_value=[{"id": "a"}])):
            exit_code = main(["resolvers"])

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == [{"id": "a"}]

    def test_main_returns_error_on_domain_error(self):
        failing = AsyncMock(side_effect=EntityNotFoundError("Resolver", "missing"))
        with patch("music_resolver.main.run_command", new=failing):
            exit_code = main(["enable", "missing"])

        assert exit_code == 1
