from datetime import timedelta
from pathlib import Path

import pytest

from portal.config import load_settings


def _write_config(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "portal.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_yaml_values_are_loaded(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path,
        """
portal:
  database_path: data/admin.sqlite3
  session_secret: from-file
  default_page_size: 20
  low_stock_threshold: 8
  token_ttl_minutes: 30
  trusted_proxies: [10.0.0.1, 10.0.0.2]
""",
    )

    settings = load_settings(config, environ={})

    assert settings.database_path == (tmp_path / "data" / "admin.sqlite3").resolve()
    assert settings.session_secret == "from-file"
    assert settings.default_page_size == 20
    assert settings.low_stock_threshold == 8
    assert settings.token_ttl == timedelta(minutes=30)
    assert settings.proxy_hosts == ["10.0.0.1", "10.0.0.2"]


def test_environment_overrides_file(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "portal:\n  session_secret: from-file\n  default_page_size: 20\n")
    env = {
        "PORTAL_SESSION_SECRET": "from-env",
        "PORTAL_DEFAULT_PAGE_SIZE": "50",
        "PORTAL_SESSION_SECURE": "true",
        "PORTAL_DB_PATH": str(tmp_path / "env.sqlite3"),
    }

    settings = load_settings(config, environ=env)

    assert settings.session_secret == "from-env"
    assert settings.default_page_size == 50
    assert settings.secure_cookies is True
    assert settings.database_path == (tmp_path / "env.sqlite3").resolve()


def test_config_path_from_environment(tmp_path: Path) -> None:
    config = _write_config(tmp_path, "portal:\n  activity_limit: 3\n")
    settings = load_settings(environ={"PORTAL_CONFIG": str(config)})
    assert settings.activity_limit == 3
    assert settings.proxy_hosts == "*"


def test_invalid_values_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_settings(environ={"PORTAL_DEFAULT_PAGE_SIZE": "7"})
    with pytest.raises(ValueError):
        load_settings(_write_config(tmp_path, "- not\n- a mapping\n"), environ={})
    with pytest.raises(ValueError):
        load_settings(environ={"PORTAL_TOKEN_TTL_MINUTES": "0"})
