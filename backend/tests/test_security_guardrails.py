import pytest

from core import config as config_module


def _reset_settings_cache():
    config_module.get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _clear_cache_after():
    yield
    _reset_settings_cache()


def test_non_local_debug_mode_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("JWT_SECRET", "real-secret")
    monkeypatch.setenv("ENCRYPTION_KEY", "real-encryption-key")
    _reset_settings_cache()

    with pytest.raises(ValueError, match="debug=true"):
        config_module.get_settings()


def test_non_local_default_secrets_are_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", config_module.DEFAULT_JWT_SECRET)
    monkeypatch.setenv("ENCRYPTION_KEY", "real-encryption-key")
    _reset_settings_cache()

    with pytest.raises(ValueError, match="default JWT secret"):
        config_module.get_settings()


def test_non_local_default_encryption_key_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", "real-secret")
    monkeypatch.setenv("ENCRYPTION_KEY", config_module.DEFAULT_ENCRYPTION_KEY)
    _reset_settings_cache()

    with pytest.raises(ValueError, match="default encryption key"):
        config_module.get_settings()


def test_non_local_usage_indicator_must_be_known(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", "real-secret")
    monkeypatch.setenv("ENCRYPTION_KEY", "real-encryption-key")
    monkeypatch.setenv("EDI_USAGE_INDICATOR", "X")
    _reset_settings_cache()

    with pytest.raises(ValueError, match="edi_usage_indicator"):
        config_module.get_settings()


def test_local_allows_dev_defaults(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("JWT_SECRET", config_module.DEFAULT_JWT_SECRET)
    monkeypatch.setenv("ENCRYPTION_KEY", config_module.DEFAULT_ENCRYPTION_KEY)
    _reset_settings_cache()

    settings = config_module.get_settings()
    assert settings.app_env == "local"
    assert settings.edi_usage_indicator == "P"


def test_issued_token_decodes_until_it_expires():
    from datetime import timedelta

    from core.security import create_access_token, decode_access_token

    token = create_access_token({"sub": "buyer", "email": "buyer@floorline.local"})
    payload = decode_access_token(token)
    assert payload["sub"] == "buyer"
    assert "exp" in payload

    expired = create_access_token({"sub": "buyer"}, expires_delta=timedelta(seconds=-1))
    assert decode_access_token(expired) is None


def test_token_signed_with_another_secret_is_rejected(monkeypatch):
    from core.security import create_access_token, decode_access_token

    monkeypatch.setenv("JWT_SECRET", "partner-portal-secret")
    _reset_settings_cache()
    foreign = create_access_token({"sub": "buyer"})

    monkeypatch.delenv("JWT_SECRET")
    _reset_settings_cache()
    assert decode_access_token(foreign) is None
    assert decode_access_token(foreign[:-2] + "xx") is None
