"""Unit tests for the Logfire monitoring setup."""

from unittest.mock import MagicMock, patch

from ai_office.core import monitoring


def test_disabled_by_default() -> None:
    with patch.object(monitoring, "LOGFIRE_ENABLED", False), patch.object(monitoring, "logfire") as logfire:
        assert monitoring.initialize_logfire() is False
    logfire.configure.assert_not_called()


def test_enabled_without_token_does_nothing() -> None:
    with patch.object(monitoring, "LOGFIRE_ENABLED", True), patch.object(monitoring, "LOGFIRE_TOKEN", ""), patch.object(
        monitoring, "logfire"
    ) as logfire:
        assert monitoring.initialize_logfire() is False
    logfire.configure.assert_not_called()


def test_enabled_configures_and_instruments() -> None:
    app = MagicMock()
    with patch.object(monitoring, "LOGFIRE_ENABLED", True), patch.object(
        monitoring, "LOGFIRE_TOKEN", "token-123"
    ), patch.object(monitoring, "logfire") as logfire:
        assert monitoring.initialize_logfire(app) is True

    logfire.configure.assert_called_once()
    assert logfire.configure.call_args.kwargs["token"] == "token-123"
    logfire.instrument_pydantic_ai.assert_called_once_with()
    logfire.instrument_sqlalchemy.assert_called_once_with()
    logfire.instrument_httpx.assert_called_once_with()
    logfire.instrument_fastapi.assert_called_once_with(app=app)


def test_instrumentation_failures_are_tolerated() -> None:
    with patch.object(monitoring, "LOGFIRE_ENABLED", True), patch.object(
        monitoring, "LOGFIRE_TOKEN", "token-123"
    ), patch.object(monitoring, "logfire") as logfire:
        logfire.instrument_sqlalchemy.side_effect = RuntimeError("not installed")
        assert monitoring.initialize_logfire() is True

    logfire.instrument_httpx.assert_called_once_with()
    logfire.instrument_fastapi.assert_not_called()
