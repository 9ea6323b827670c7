"""
Tests for settings and logging setup.
"""

import json
import logging

from wacore.logging import JSONFormatter, TextFormatter
from wacore.settings import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        settings = Settings(_env_file=None)

        assert settings.PORT == 3000
        assert settings.TRANSPORT == "stub"
        assert settings.CREDENTIAL_BACKEND == "file"
        assert settings.RECONNECT_DELAY_SECONDS == 3.0

    def test_from_environment(self, monkeypatch):
        """Test env vars are read, normalized and blanks dropped."""
        monkeypatch.setenv("TRANSPORT", " Evolution ")
        monkeypatch.setenv("WEBHOOK_URL", "   ")
        monkeypatch.setenv("PORT", "8081")

        settings = Settings(_env_file=None)

        assert settings.TRANSPORT == "evolution"
        assert settings.WEBHOOK_URL is None
        assert settings.PORT == 8081


class TestLogFormatters:
    def make_record(self):
        logger = logging.getLogger("test")
        return logger.makeRecord(
            "test", logging.INFO, __file__, 1, "Session connected", (), None,
            extra={"tenant_id": "shop-1"},
        )

    def test_json_lifts_extras(self):
        data = json.loads(JSONFormatter().format(self.make_record()))

        assert data["message"] == "Session connected"
        assert data["level"] == "INFO"
        assert data["tenant_id"] == "shop-1"

    def test_text_appends_extras(self):
        line = TextFormatter().format(self.make_record())

        assert "Session connected" in line
        assert "tenant_id=shop-1" in line
