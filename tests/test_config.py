import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paperchat.config import (
    DEFAULT_API_BASE_URL,
    ConfigManager,
    load_client_settings,
    normalize_base_url,
)


def test_defaults_when_nothing_is_configured(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    manager = ConfigManager(app_name="PaperChatTest")

    settings = load_client_settings(manager, environ={})

    assert settings.base_url == DEFAULT_API_BASE_URL
    assert settings.user_id == "user_12345"
    assert settings.session_limit == 50
    assert settings.request_timeout == 60.0
    assert settings.max_retries == 2


def test_environment_overrides_settings_file(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    manager = ConfigManager(app_name="PaperChatTest")
    manager.save(
        {
            "client": {
                "base_url": "http://file.example/api/",
                "user_id": "from-file",
                "session_limit": 10,
            }
        }
    )

    settings = load_client_settings(
        manager,
        environ={
            "PAPERCHAT_API_BASE_URL": " http://env.example/api/v1/ ",
            "PAPERCHAT_REQUEST_TIMEOUT": "5",
        },
    )

    assert settings.base_url == "http://env.example/api/v1"
    assert settings.user_id == "from-file"
    assert settings.session_limit == 10
    assert settings.request_timeout == 5.0


def test_ini_values_are_coerced(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    manager = ConfigManager(app_name="PaperChatTest", format="ini")
    manager.save({"client": {"session_limit": "25", "request_timeout": "bogus", "max_retries": "0"}})

    settings = load_client_settings(manager, environ={})

    assert settings.session_limit == 25
    assert settings.request_timeout == 60.0
    assert settings.max_retries == 0


def test_normalize_base_url() -> None:
    assert normalize_base_url("http://host/api/") == "http://host/api"
    assert normalize_base_url("   ") == DEFAULT_API_BASE_URL
    assert normalize_base_url(None) == DEFAULT_API_BASE_URL
