"""Unit tests for the logging configuration module."""

import logging
import sys
from unittest.mock import MagicMock, patch

import pytest
import structlog

from swapdeploy.logging import deployment_context, get_logger, setup_logging


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Reset root logger state before and after each test."""
    original_handlers = logging.root.handlers[:]
    original_level = logging.root.level
    logging.root.handlers.clear()
    logging.root.setLevel(logging.WARNING)
    yield
    logging.root.handlers.clear()
    logging.root.handlers.extend(original_handlers)
    logging.root.setLevel(original_level)


def _settings(level: str = "INFO", development: bool = False) -> MagicMock:
    mock_settings = MagicMock()
    mock_settings.log_level = level
    mock_settings.is_development = development
    return mock_settings


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_calls_basic_config_with_debug(self):
        """Test that setup_logging calls basicConfig with correct level for DEBUG."""
        with patch("swapdeploy.logging.get_settings", return_value=_settings("DEBUG")):
            with patch("swapdeploy.logging.logging.basicConfig") as mock_basic:
                setup_logging()

        mock_basic.assert_called_once_with(
            format="%(message)s", stream=sys.stderr, level=logging.DEBUG
        )

    def test_setup_logging_invalid_level_defaults_to_info(self):
        """Test setup_logging falls back to INFO for invalid log level."""
        with patch("swapdeploy.logging.get_settings", return_value=_settings("NONEXISTENT")):
            with patch("swapdeploy.logging.logging.basicConfig") as mock_basic:
                setup_logging()

        mock_basic.assert_called_once_with(
            format="%(message)s", stream=sys.stderr, level=logging.INFO
        )

    def test_setup_logging_reduces_third_party_noise(self):
        """Test that setup_logging sets httpx loggers to WARNING."""
        with patch("swapdeploy.logging.get_settings", return_value=_settings("DEBUG")):
            setup_logging()

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

    def test_setup_logging_configures_structlog(self):
        """Test that setup_logging calls structlog.configure with correct params."""
        with patch("swapdeploy.logging.get_settings", return_value=_settings()):
            with patch("swapdeploy.logging.structlog.configure") as mock_configure:
                setup_logging()

        mock_configure.assert_called_once()
        call_kwargs = mock_configure.call_args[1]
        assert call_kwargs["context_class"] is dict
        assert call_kwargs["cache_logger_on_first_use"] is True

    def test_setup_logging_development_uses_console_renderer(self):
        """Test that development mode uses ConsoleRenderer."""
        with patch("swapdeploy.logging.get_settings", return_value=_settings(development=True)):
            with patch("swapdeploy.logging.structlog.configure"):
                with patch("swapdeploy.logging.structlog.dev.ConsoleRenderer") as mock_renderer:
                    setup_logging()

        mock_renderer.assert_called_once_with(colors=True)

    def test_setup_logging_production_uses_json_renderer(self):
        """Test that production mode uses JSONRenderer."""
        with patch("swapdeploy.logging.get_settings", return_value=_settings()):
            with patch("swapdeploy.logging.structlog.configure"):
                with patch(
                    "swapdeploy.logging.structlog.processors.JSONRenderer"
                ) as mock_renderer:
                    setup_logging()

        mock_renderer.assert_called_once_with()


class TestGetLogger:
    def test_get_logger_returns_bound_logger(self):
        log = get_logger("swapdeploy.test")
        assert hasattr(log, "info")
        assert hasattr(log, "bind")

    def test_get_logger_uses_structlog(self):
        with patch("swapdeploy.logging.structlog.get_logger") as mock_get:
            get_logger("swapdeploy.test")
        mock_get.assert_called_once_with("swapdeploy.test", component="test")


class TestDeploymentContext:
    def test_binds_service_and_image_inside_block(self):
        with deployment_context("svc", "svc:abc123"):
            assert structlog.contextvars.get_contextvars() == {
                "service": "svc",
                "image": "svc:abc123",
            }

        assert structlog.contextvars.get_contextvars() == {}

    def test_unbinds_on_error(self):
        with pytest.raises(RuntimeError):
            with deployment_context("svc", "svc:abc123"):
                raise RuntimeError("boom")

        assert "service" not in structlog.contextvars.get_contextvars()

    def test_tags_log_lines(self):
        capture = structlog.testing.LogCapture()
        structlog.configure(processors=[structlog.contextvars.merge_contextvars, capture])

        with deployment_context("svc", "svc:abc123"):
            get_logger("swapdeploy.deployer").info("deploy_started")

        entry = capture.entries[0]
        assert entry["event"] == "deploy_started"
        assert entry["service"] == "svc"
        assert entry["image"] == "svc:abc123"
        assert entry["component"] == "deployer"
