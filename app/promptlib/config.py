import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    site_url: str
    directory_page_size: int
    boot_cache_ttl_seconds: int
    directory_snapshot_path: str
    csrf_enabled: bool


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from None


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///promptlib.db"),
        site_url=_getenv("SITE_URL", ""),
        directory_page_size=_getenv_int("DIRECTORY_PAGE_SIZE", 50),
        boot_cache_ttl_seconds=_getenv_int("BOOT_CACHE_TTL_SECONDS", 300),
        directory_snapshot_path=_getenv("DIRECTORY_SNAPSHOT_PATH", ""),
        csrf_enabled=_getenv("CSRF_ENABLED", "1") not in ("0", "false", "no"),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "SITE_URL": s.site_url.rstrip("/"),
        "DIRECTORY_PAGE_SIZE": s.directory_page_size,
        "BOOT_CACHE_TTL_SECONDS": s.boot_cache_ttl_seconds,
        "DIRECTORY_SNAPSHOT_PATH": s.directory_snapshot_path,
        "CSRF_ENABLED": s.csrf_enabled,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # submissions are text only
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
