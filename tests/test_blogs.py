import pytest

from app.promptlib import auth, create_app
from app.promptlib.db import session_scope
from app.promptlib.models import AuditEvent, Base
from app.promptlib.modules.blogs.models import BlogPost
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
    return app.test_client()


def _login(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})


def _post(client, slug):
    with session_scope(client.application) as s:
        return s.query(BlogPost).filter(BlogPost.slug == slug).one_or_none()


def test_blog_index_empty(client):
    r = client.get("/blogs")
    assert r.status_code == 200
    assert b"No posts yet." in r.data


def test_draft_then_publish(client):
    _login(client)
    r = client.post(
        "/admin/blogs/new",
        data={"title": "Using AI for Sermon Prep", "excerpt": "A short guide", "body": "Start with the text."},
    )
    assert r.status_code == 302
    post = _post(client, "using-ai-for-sermon-prep")
    assert post is not None
    assert post.published is False

    client.get("/auth/logout")
    assert client.get("/blogs/using-ai-for-sermon-prep").status_code == 404

    _login(client)
    client.post(f"/admin/blogs/{post.id}/publish", data={"published": "1"})
    r = client.get("/blogs/using-ai-for-sermon-prep")
    assert r.status_code == 200
    assert b"Start with the text." in r.data
    assert b"Using AI for Sermon Prep" in client.get("/blogs").data

    client.post(f"/admin/blogs/{post.id}/publish", data={"published": "0"})
    assert client.get("/blogs/using-ai-for-sermon-prep").status_code == 404

    with session_scope(client.application) as s:
        actions = [e.action for e in s.query(AuditEvent).filter(AuditEvent.action.like("blog.%")).order_by(AuditEvent.id)]
    assert actions == ["blog.create", "blog.publish", "blog.unpublish"]


def test_edit_post_and_slug_clash(client):
    _login(client)
    client.post("/admin/blogs/new", data={"title": "First"})
    client.post("/admin/blogs/new", data={"title": "Second"})
    second = _post(client, "second")

    r = client.post(f"/admin/blogs/{second.id}/edit", data={"title": "Second", "slug": "first"}, follow_redirects=True)
    assert b"Another post already uses that slug." in r.data

    client.post(f"/admin/blogs/{second.id}/edit", data={"title": "Second, revised", "slug": "second", "body": "New"})
    updated = _post(client, "second")
    assert updated.title == "Second, revised"
    assert updated.updated_at is not None


def test_blog_admin_requires_permission(client):
    r = client.get("/admin/blogs", follow_redirects=False)
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
