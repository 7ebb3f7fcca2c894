import pytest

from app.promptlib import create_app
from app.promptlib.config import load_config


def test_defaults(monkeypatch):
    for k in ("SITE_URL", "DIRECTORY_PAGE_SIZE", "BOOT_CACHE_TTL_SECONDS", "DIRECTORY_SNAPSHOT_PATH", "CSRF_ENABLED"):
        monkeypatch.delenv(k, raising=False)
    cfg = load_config()
    assert cfg["DIRECTORY_PAGE_SIZE"] == 50
    assert cfg["BOOT_CACHE_TTL_SECONDS"] == 300
    assert cfg["CSRF_ENABLED"] is True
    assert cfg["SITE_URL"] == ""


def test_site_url_trailing_slash_is_trimmed(monkeypatch):
    monkeypatch.setenv("SITE_URL", "https://prompts.example.org/")
    assert load_config()["SITE_URL"] == "https://prompts.example.org"


def test_non_integer_setting_fails_fast(monkeypatch):
    monkeypatch.setenv("DIRECTORY_PAGE_SIZE", "lots")
    with pytest.raises(RuntimeError, match="DIRECTORY_PAGE_SIZE"):
        load_config()


def test_production_requires_postgres(monkeypatch, tmp_path):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()


def test_production_requires_secret_key(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "change-me")
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/promptlib")
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()
