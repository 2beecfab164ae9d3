from __future__ import annotations

import logging

import pytest

import app

SECRET = "Endpoint=sb://source/;SharedAccessKeyName=Root;SharedAccessKey=SECRETKEY"


def test_logging_redacts_connection_string_from_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SOURCE_CONNECTION_STRING", raising=False)
    monkeypatch.delenv("TARGET_CONNECTION_STRING", raising=False)
    # Stands in for a .env file that only python-dotenv knows about.
    monkeypatch.setattr(app, "load_dotenv", lambda: monkeypatch.setenv("SOURCE_CONNECTION_STRING", SECRET))
    monkeypatch.setattr(
        app.settings,
        "LOGGING",
        {
            "enabled": True,
            "level": "INFO",
            "console": True,
            "file": {"enabled": False},
            "redact": {"enabled": True, "patterns": ["SOURCE_CONNECTION_STRING", "TARGET_CONNECTION_STRING"]},
        },
    )
    configured: dict = {}
    monkeypatch.setattr(app.logging, "basicConfig", lambda **kwargs: configured.update(kwargs))

    app._configure_logging()

    formatter = configured["handlers"][0].formatter
    record = logging.LogRecord("replicator", logging.ERROR, __file__, 1, "conn=%s", (SECRET,), None)
    rendered = formatter.format(record)
    assert "SECRETKEY" not in rendered
    assert "conn=***" in rendered


def test_logging_disabled_skips_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app.settings, "LOGGING", {"enabled": False})
    calls = []
    monkeypatch.setattr(app.logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    app._configure_logging()

    assert calls == []
