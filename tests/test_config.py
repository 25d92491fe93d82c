from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from dzakcloud.config import Settings, load_settings


def _write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "site.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file_or_environment(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "")

    settings = load_settings(config, environ={})

    assert settings.database_path.name == "dzakcloud.sqlite3"
    assert settings.secret_key is None
    assert settings.token_ttl == timedelta(hours=24)
    assert settings.legacy_data_dir == settings.database_path.parent
    assert settings.legacy_data_dir.name == "data"
    assert settings.import_on_startup is True
    assert settings.admin_tokens == ()
    assert settings.cors_origins == ("*",)
    assert settings.ping_message == "ping"


def test_yaml_paths_are_relative_to_the_file(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path,
        "\n".join(
            [
                "database_path: db/site.sqlite3",
                "legacy_data_dir: legacy",
                "secret_key: from-file",
                "token_ttl_hours: 2",
                "admin_tokens: [one, two]",
                "cors_origins: https://dzakcloud.example",
                "import_on_startup: false",
            ]
        ),
    )

    settings = load_settings(config, environ={})

    assert settings.database_path == (tmp_path / "db" / "site.sqlite3").resolve()
    assert settings.legacy_data_dir == (tmp_path / "legacy").resolve()
    assert settings.secret_key == "from-file"
    assert settings.token_ttl == timedelta(hours=2)
    assert settings.admin_tokens == ("one", "two")
    assert settings.cors_origins == ("https://dzakcloud.example",)
    assert settings.import_on_startup is False


def test_environment_overrides_file(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "secret_key: from-file\nping_message: hello\n")
    env_db = tmp_path / "env.sqlite3"

    settings = load_settings(
        config,
        environ={
            "DZAKCLOUD_SECRET_KEY": "from-env",
            "DZAKCLOUD_DB_PATH": str(env_db),
            "DZAKCLOUD_ADMIN_TOKENS": "a, b",
            "DZAKCLOUD_IMPORT_ON_STARTUP": "no",
            "PING_MESSAGE": "pong",
        },
    )

    assert settings.secret_key == "from-env"
    assert settings.database_path == env_db.resolve()
    assert settings.admin_tokens == ("a", "b")
    assert settings.import_on_startup is False
    assert settings.ping_message == "pong"


def test_config_file_from_environment(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "pool_size: 3\n")

    settings = load_settings(environ={"DZAKCLOUD_CONFIG": str(config)})

    assert settings.pool_size == 3


@pytest.mark.parametrize(
    "data",
    [
        {"unexpected": 1},
        {"token_ttl_hours": 0},
        {"pool_size": 0},
        {"default_page_size": 50, "max_page_size": 10},
    ],
)
def test_invalid_settings_are_rejected(data: dict) -> None:
    with pytest.raises(ValueError):
        Settings.from_dict(data)


def test_non_mapping_file_is_rejected(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "- just\n- a list\n")

    with pytest.raises(ValueError):
        load_settings(config, environ={})
