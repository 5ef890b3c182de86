import pytest

from palm_console.config import Settings, load_settings
from palm_console.errors import ConfigurationError
from palm_console.loaders.backend import get_client


def test_defaults():
    settings = load_settings({})
    assert settings.idle_timeout_minutes == 10.0
    assert settings.idle_exclude_paths == ("/login",)
    assert settings.log_level == "INFO"
    assert not settings.demo_mode
    assert not settings.backend_configured


def test_reads_environment():
    settings = load_settings({
        "SUPABASE_URL": "https://example.supabase.co",
        "SUPABASE_KEY": "anon-key",
        "PALM_IDLE_TIMEOUT_MINUTES": "2.5",
        "PALM_IDLE_EXCLUDE_PATHS": "/login, /change-password,,",
        "PALM_LOG_LEVEL": "debug",
        "PALM_DEMO_MODE": "yes",
    })
    assert settings.backend_configured
    assert settings.idle_timeout_minutes == 2.5
    assert settings.idle_exclude_paths == ("/login", "/change-password")
    assert settings.log_level == "DEBUG"
    assert settings.demo_mode


@pytest.mark.parametrize("raw", ["soon", "0", "-1"])
def test_bad_timeout(raw):
    with pytest.raises(ConfigurationError):
        load_settings({"PALM_IDLE_TIMEOUT_MINUTES": raw})


def test_client_needs_credentials():
    with pytest.raises(ConfigurationError):
        get_client(Settings())
