import pytest
from werkzeug.security import generate_password_hash

from app.promptlib import auth, create_app
from app.promptlib.db import session_scope
from app.promptlib.middleware import (
    CACHE_BLOG_INDEX,
    CACHE_DEFAULT,
    CACHE_DETAIL,
    CACHE_HOME,
    CACHE_LEGAL,
    cache_control_for,
    is_compressible,
)
from app.promptlib.models import Base, Role, User
from scripts.init_db import seed_defaults


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CSRF_ENABLED", "0")
    monkeypatch.delenv("DIRECTORY_SNAPSHOT_PATH", raising=False)
    auth._login_attempts.clear()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        seed_defaults(s, admin_email="admin@example.com", admin_password="pw")
        member = User(email="member@example.com", password_hash=generate_password_hash("pw"))
        member.roles.append(s.query(Role).filter(Role.key == "user").one())
        s.add(member)

    return app.test_client()


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/", CACHE_HOME),
        ("/directory", CACHE_HOME),
        ("/directory/12", CACHE_DETAIL),
        ("/blogs/easter-recap", CACHE_DETAIL),
        ("/blogs", CACHE_BLOG_INDEX),
        ("/privacy", CACHE_LEGAL),
        ("/terms", CACHE_LEGAL),
        ("/subscribe", CACHE_DEFAULT),
        ("/api/prompts", CACHE_DEFAULT),
        ("/admin", None),
        ("/admin/prompts", None),
        ("/profile", None),
        ("/submit", None),
        ("/auth/login", None),
        ("/sitemap.xml", None),
    ],
)
def test_cache_control_for(path, expected):
    assert cache_control_for(path) == expected


def test_is_compressible():
    assert is_compressible("text/html; charset=utf-8")
    assert is_compressible("application/json")
    assert is_compressible("application/xml")
    assert not is_compressible("image/png")
    assert not is_compressible(None)


def test_public_pages_get_cache_headers(client):
    r = client.get("/")
    assert r.headers["Cache-Control"] == CACHE_HOME
    assert "Accept-Encoding" in r.headers["Vary"]

    r = client.get("/privacy")
    assert r.headers["Cache-Control"] == CACHE_LEGAL


def test_private_pages_are_not_publicly_cached(client):
    r = client.get("/auth/login")
    assert "public" not in r.headers.get("Cache-Control", "")


def test_signed_in_pages_are_not_publicly_cached(client):
    client.post("/auth/login", data={"email": "member@example.com", "password": "pw"})
    for path in ("/", "/directory", "/privacy"):
        r = client.get(path)
        assert r.status_code == 200
        assert "public" not in r.headers.get("Cache-Control", "")


def test_writes_are_not_cached(client):
    r = client.post("/api/prompts/1/usage", json={"kind": "copy"})
    assert r.status_code == 404
    assert "Cache-Control" not in r.headers


@pytest.mark.parametrize("path", ["/profile", "/submit", "/admin/", "/admin/prompts"])
def test_protected_paths_require_sign_in(client, path):
    r = client.get(path, follow_redirects=False)
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_member_can_reach_member_pages_but_not_admin(client):
    client.post("/auth/login", data={"email": "member@example.com", "password": "pw"})
    assert client.get("/profile").status_code == 200
    assert client.get("/submit").status_code == 200
    r = client.get("/admin/", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/?error=unauthorized")


def test_admin_passes_admin_guard(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    r = client.get("/admin/")
    assert r.status_code == 200
    assert "public" not in r.headers.get("Cache-Control", "")


def test_deactivated_user_is_signed_out(client):
    client.post("/auth/login", data={"email": "member@example.com", "password": "pw"})
    with session_scope(client.application) as s:
        s.query(User).filter(User.email == "member@example.com").one().is_active = False
    r = client.get("/profile", follow_redirects=False)
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
