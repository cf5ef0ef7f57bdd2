# Environment loading and config accessor tests.
import pytest

from quizhub import config
from quizhub.env import load_environment


# Ensure values from the .env file reach the config accessors.
def test_load_environment_sets_values(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "\n".join(
            [
                "# comment",
                "JWT_ALGORITHM=HS512",
                "ACCESS_TOKEN_EXPIRE_HOURS=6",
                "BASE_URL='https://quiz.example.com/'",
            ]
        ),
        encoding="utf-8",
    )
    for name in ("JWT_ALGORITHM", "ACCESS_TOKEN_EXPIRE_HOURS", "BASE_URL"):
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)

    assert load_environment(str(env_file)) is True

    assert config.get_jwt_algorithm() == "HS512"
    assert config.get_token_ttl_hours() == 6
    assert config.get_base_url() == "https://quiz.example.com"


# Ensure existing env vars are not overridden by the .env file.
def test_load_environment_does_not_override_existing(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("UPLOAD_DIR=from-file\n", encoding="utf-8")
    monkeypatch.setenv("UPLOAD_DIR", "from-env")

    load_environment(str(env_file))

    assert config.get_upload_dir() == "from-env"


# Ensure a blank JWT secret fails loudly.
def test_jwt_secret_must_be_configured(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "   ")

    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        config.get_jwt_secret()


# Ensure bad token lifetimes fall back to the default.
@pytest.mark.parametrize("raw", ["", "abc", "0", "-4"])
def test_token_ttl_falls_back_to_default(monkeypatch, raw):
    monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_HOURS", raw)

    assert config.get_token_ttl_hours() == config.DEFAULT_TOKEN_TTL_HOURS


# Ensure the error names every missing Twilio variable.
def test_twilio_settings_name_missing_vars(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.delenv("TWILIO_AUTH_TOKEN", raising=False)
    monkeypatch.delenv("TWILIO_VERIFY_SERVICE_SID", raising=False)

    with pytest.raises(RuntimeError) as excinfo:
        config.get_twilio_settings()

    assert "TWILIO_AUTH_TOKEN" in str(excinfo.value)
    assert "TWILIO_VERIFY_SERVICE_SID" in str(excinfo.value)
    assert "TWILIO_ACCOUNT_SID" not in str(excinfo.value)


# Ensure complete Twilio settings are returned by key.
def test_twilio_settings(monkeypatch):
    monkeypatch.setenv("TWILIO_ACCOUNT_SID", "AC123")
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "token")
    monkeypatch.setenv("TWILIO_VERIFY_SERVICE_SID", "VA456")

    assert config.get_twilio_settings() == {
        "account_sid": "AC123",
        "auth_token": "token",
        "service_sid": "VA456",
    }


# Ensure upload dir and base URL fall back to their defaults.
def test_upload_dir_and_base_url_defaults(monkeypatch):
    monkeypatch.delenv("UPLOAD_DIR", raising=False)
    monkeypatch.delenv("BASE_URL", raising=False)

    assert config.get_upload_dir() == config.DEFAULT_UPLOAD_DIR
    assert config.get_base_url() is None
