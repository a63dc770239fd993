"""
Tests for application settings validation.
"""

import pytest
from pydantic import ValidationError

from core.config import MIN_SALT_LENGTH, Settings


def _settings(**overrides: object) -> Settings:
    values = {"SECRET_KEY": "k", "PARTICIPANT_HASH_SALT": "s" * MIN_SALT_LENGTH}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.mark.unit
class TestSettings:
    """Test required secrets and derived properties."""

    def test_valid_settings(self) -> None:
        settings = _settings()
        assert settings.APP_NAME == "Tally"
        assert settings.PASSWORD_HASH_ROUNDS >= 10

    def test_missing_salt_fails_fast(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PARTICIPANT_HASH_SALT", raising=False)
        with pytest.raises(ValidationError):
            Settings(_env_file=None, SECRET_KEY="k")

    def test_short_salt_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(PARTICIPANT_HASH_SALT="short")

    def test_missing_secret_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(SECRET_KEY="")

    def test_hash_rounds_floor(self) -> None:
        with pytest.raises(ValidationError):
            _settings(PASSWORD_HASH_ROUNDS=4)

    def test_cors_origins_comma_separated(self) -> None:
        settings = _settings(CORS_ORIGINS="http://a.test, http://b.test")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_cors_origins_json(self) -> None:
        settings = _settings(CORS_ORIGINS='["http://a.test"]')
        assert settings.cors_origins_list == ["http://a.test"]

    def test_frontend_base_url_strips_slash(self) -> None:
        assert _settings(FRONTEND_URL="https://tally.test/").frontend_base_url == "https://tally.test"
