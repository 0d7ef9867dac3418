import json
import logging
from unittest.mock import patch

import pytest

from voice_gateway.core.config import settings, validate_settings_for_production
from voice_gateway.core.logging import JSONFormatter, RequestIdFilter, request_id_var
from voice_gateway.core.metrics import _normalize_path
from voice_gateway.core.sentry import init_sentry, tag_event
from voice_gateway.gateway.errors import ProviderError


class TestProductionValidation:
    def test_test_settings_are_valid(self):
        validate_settings_for_production()

    def test_reports_every_problem(self, monkeypatch):
        monkeypatch.setattr(settings, "elevenlabs_api_key", "")
        monkeypatch.setattr(settings, "elevenlabs_timeout", 2.0)
        monkeypatch.setattr(settings, "max_text_length", 20000)

        with pytest.raises(SystemExit) as exc_info:
            validate_settings_for_production()

        message = str(exc_info.value)
        assert "ELEVENLABS_API_KEY is required" in message
        assert "ELEVENLABS_TIMEOUT" in message
        assert "MAX_TEXT_LENGTH" in message

    def test_audio_size_cap(self, monkeypatch):
        monkeypatch.setattr(settings, "max_audio_size", 200 * 1024 * 1024)
        with pytest.raises(SystemExit, match="MAX_AUDIO_SIZE"):
            validate_settings_for_production()

    def test_production_rejects_wildcard_cors(self, monkeypatch):
        monkeypatch.setattr(settings, "app_env", "production")
        monkeypatch.setattr(settings, "app_debug", False)
        monkeypatch.setattr(settings, "allowed_origins", "*")
        with pytest.raises(SystemExit, match="ALLOWED_ORIGINS"):
            validate_settings_for_production()

    def test_api_keys_parsing(self, monkeypatch):
        monkeypatch.setattr(settings, "valid_api_keys", " a , b,,c ")
        assert settings.api_keys == {"a", "b", "c"}


class TestLogging:
    def test_json_formatter_includes_request_id(self):
        record = logging.LogRecord("voice_gateway.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        token = request_id_var.set("voice-abc")
        try:
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)

        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "hello world"
        assert data["request_id"] == "voice-abc"
        assert data["level"] == "INFO"


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/api/v1/agents/agent_x_1234abcd", "/api/v1/agents/{id}"),
        ("/api/v1/agents/stats/overview", "/api/v1/agents/stats/overview"),
        ("/uploads/tts_agent_x_1.mp3", "/uploads/{id}"),
        ("/api/v1/voice/synthesize", "/api/v1/voice/synthesize"),
    ],
)
def test_metrics_path_normalization(path, expected):
    assert _normalize_path(path) == expected


class TestSentry:
    def test_disabled_without_dsn(self, monkeypatch):
        monkeypatch.setattr(settings, "sentry_dsn", "")
        assert init_sentry() is False

    def test_init_with_release_and_hook(self, monkeypatch):
        monkeypatch.setattr(settings, "sentry_dsn", "https://key@sentry.example/1")
        with patch("sentry_sdk.init") as sentry_init:
            assert init_sentry() is True

        kwargs = sentry_init.call_args.kwargs
        assert kwargs["release"].startswith("voice-gateway@")
        assert kwargs["before_send"] is tag_event
        assert kwargs["send_default_pii"] is False

    def test_provider_errors_are_tagged(self):
        exc = ProviderError("ElevenLabs quota exceeded", status_code=402)
        token = request_id_var.set("voice-123")
        try:
            event = tag_event({}, {"exc_info": (ProviderError, exc, None)})
        finally:
            request_id_var.reset(token)

        assert event["tags"] == {"request_id": "voice-123", "provider": "elevenlabs", "provider_status": "402"}

    def test_other_errors_keep_existing_tags(self):
        event = tag_event({"tags": {"task": "purge_old_records"}}, {"exc_info": (KeyError, KeyError("x"), None)})
        assert event["tags"] == {"task": "purge_old_records"}
