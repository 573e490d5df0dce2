"""
test_config.py

Tests for the JSON configuration helpers. The autouse ``config_home``
fixture points the bootstrap directory at a temporary path.
"""

import json

from linkrepo.core import config


def read_file(config_home):
    return json.loads((config_home / config.CONFIG_FILENAME).read_text(encoding="utf-8"))


def test_first_load_writes_defaults(config_home):
    cfg = config.load_config()

    assert cfg["backend_url"] is None
    assert cfg["anon_key"] is None
    assert cfg["sign_out_on_hide"] is True
    assert cfg["request_timeout"] == config.DEFAULT_REQUEST_TIMEOUT
    assert read_file(config_home) == cfg


def test_backend_config_incomplete_by_default():
    backend = config.get_backend_config()
    assert backend.is_complete is False


def test_set_backend_round_trip(config_home):
    config.set_backend("  https://abcd.backend.test/ ", " key ")

    backend = config.get_backend_config()

    assert backend.backend_url == "https://abcd.backend.test"
    assert backend.anon_key == "key"
    assert backend.is_complete
    assert read_file(config_home)["backend_url"] == "https://abcd.backend.test"


def test_environment_overrides_file(monkeypatch):
    config.set_backend("https://file.backend.test", "file-key")
    monkeypatch.setenv(config.ENV_BACKEND_URL, "https://env.backend.test/")
    monkeypatch.setenv(config.ENV_ANON_KEY, "env-key")

    backend = config.get_backend_config()

    assert backend.backend_url == "https://env.backend.test"
    assert backend.anon_key == "env-key"


def test_invalid_values_fall_back_to_defaults(config_home):
    config_home.mkdir(parents=True)
    (config_home / config.CONFIG_FILENAME).write_text(
        json.dumps({"sign_out_on_hide": "yes", "request_timeout": -1}),
        encoding="utf-8",
    )

    backend = config.get_backend_config()

    assert backend.sign_out_on_hide is True
    assert backend.request_timeout == config.DEFAULT_REQUEST_TIMEOUT


def test_policy_can_be_disabled(config_home):
    config_home.mkdir(parents=True)
    (config_home / config.CONFIG_FILENAME).write_text(
        json.dumps({"sign_out_on_hide": False, "request_timeout": 5}),
        encoding="utf-8",
    )

    backend = config.get_backend_config()

    assert backend.sign_out_on_hide is False
    assert backend.request_timeout == 5.0


def test_unreadable_file_is_ignored(config_home):
    config_home.mkdir(parents=True)
    (config_home / config.CONFIG_FILENAME).write_text("{not json", encoding="utf-8")

    cfg = config.load_config()

    assert cfg["backend_url"] is None


def test_last_email(config_home):
    assert config.get_last_email() is None
    config.set_last_email("someone@example.com")
    assert config.get_last_email() == "someone@example.com"
