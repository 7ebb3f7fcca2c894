import pytest
from werkzeug.security import generate_password_hash

from app.promptlib import auth, create_app
from app.promptlib.db import session_scope
from app.promptlib.models import AuditEvent, Base, Role, User
from app.promptlib.modules.directory.models import Category, Prompt
from app.promptlib.modules.moderation.service import ModerationError, approve_prompt, reject_prompt, set_user_role, toggle_featured
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
        s.flush()
        s.add_all(
            [
                Prompt(title="Prayer walk guide", content="Guide a neighborhood prayer walk.", category="outreach",
                       author_user_id=member.id, author_name="member", status="pending"),
                Prompt(title="Volunteer thank-you", content="Draft a thank-you note to volunteers.", category="administration",
                       author_user_id=member.id, author_name="member", status="approved"),
            ]
        )

    return app.test_client()


def _login(client, email="admin@example.com"):
    client.post("/auth/login", data={"email": email, "password": "pw"})


def _prompt(client, title):
    with session_scope(client.application) as s:
        return s.query(Prompt).filter(Prompt.title == title).one()


def _actions(client):
    with session_scope(client.application) as s:
        return [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]


def test_member_is_kept_out_of_admin(client):
    _login(client, "member@example.com")
    r = client.get("/admin/prompts", follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/?error=unauthorized")

    r = client.get("/admin/prompts", follow_redirects=True)
    assert b"You don&#39;t have access to that page." in r.data or b"You don't have access to that page." in r.data


def test_queue_defaults_to_pending(client):
    _login(client)
    r = client.get("/admin/prompts")
    assert r.status_code == 200
    assert b"Prayer walk guide" in r.data
    assert b"Volunteer thank-you" not in r.data

    r = client.get("/admin/prompts?status=all")
    assert b"Volunteer thank-you" in r.data


def test_approve_publishes_prompt(client):
    _login(client)
    pid = _prompt(client, "Prayer walk guide").id
    r = client.post(f"/admin/prompts/{pid}/approve", follow_redirects=False)
    assert r.status_code == 302
    assert _prompt(client, "Prayer walk guide").status == "approved"
    assert "prompt.approve" in _actions(client)

    r = client.get("/api/prompts?category=outreach")
    assert [p["title"] for p in r.json["prompts"]] == ["Prayer walk guide"]


def test_approve_honours_queue_next(client):
    _login(client)
    pid = _prompt(client, "Prayer walk guide").id
    r = client.post(f"/admin/prompts/{pid}/approve", data={"next": "/admin/prompts?status=pending"})
    assert r.headers["Location"].endswith("/admin/prompts?status=pending")

    r = client.post(f"/admin/prompts/{pid}/approve", data={"next": "https://evil.example.com/"})
    assert r.headers["Location"].endswith(f"/admin/prompts/{pid}")


def test_reject_records_reason_and_unfeatures(client):
    _login(client)
    pid = _prompt(client, "Volunteer thank-you").id
    client.post(f"/admin/prompts/{pid}/feature")
    assert _prompt(client, "Volunteer thank-you").featured is True

    client.post(f"/admin/prompts/{pid}/reject", data={"reason": "Duplicate of an existing prompt"})
    p = _prompt(client, "Volunteer thank-you")
    assert p.status == "rejected"
    assert p.rejection_reason == "Duplicate of an existing prompt"
    assert p.featured is False
    assert _actions(client)[-2:] == ["prompt.feature", "prompt.reject"]

    _login(client, "member@example.com")
    r = client.get("/profile")
    assert b"Duplicate of an existing prompt" in r.data


def test_feature_requires_approved(client):
    _login(client)
    pid = _prompt(client, "Prayer walk guide").id
    r = client.post(f"/admin/prompts/{pid}/feature", follow_redirects=True)
    assert b"Only approved prompts can be featured." in r.data
    assert _prompt(client, "Prayer walk guide").featured is False


def test_delete_prompt(client):
    _login(client)
    pid = _prompt(client, "Prayer walk guide").id
    r = client.post(f"/admin/prompts/{pid}/delete", data={"reason": "spam"})
    assert r.status_code == 302
    with session_scope(client.application) as s:
        assert s.get(Prompt, pid) is None
        ev = s.query(AuditEvent).filter(AuditEvent.action == "prompt.delete").one()
        assert ev.reason == "spam"


def test_missing_prompt_is_404(client):
    _login(client)
    assert client.get("/admin/prompts/9999").status_code == 404
    assert client.post("/admin/prompts/9999/approve").status_code == 404


def test_create_and_edit_category(client):
    _login(client)
    r = client.post("/admin/categories/new", data={"name": "Men's Ministry", "icon": "shield"})
    assert r.status_code == 302
    with session_scope(client.application) as s:
        c = s.query(Category).filter(Category.category_id == "men-s-ministry").one()
        pk = c.id

    r = client.post("/admin/categories/new", data={"name": "Men's Ministry"}, follow_redirects=True)
    assert b"already exists" in r.data

    client.post(f"/admin/categories/{pk}/edit", data={"name": "Men's Groups", "description": "Breakfasts and studies"})
    with session_scope(client.application) as s:
        c = s.get(Category, pk)
        assert c.name == "Men's Groups"
        assert c.category_id == "men-s-ministry"
    assert _actions(client)[-1] == "category.update"

    r = client.get("/admin/categories")
    assert r.status_code == 200
    assert b"men-s-ministry" in r.data


def test_set_user_role(client):
    _login(client)
    with session_scope(client.application) as s:
        member_id = s.query(User).filter(User.email == "member@example.com").one().id
        admin_id = s.query(User).filter(User.email == "admin@example.com").one().id

    client.post(f"/admin/users/{member_id}/role", data={"role": "admin"})
    with session_scope(client.application) as s:
        assert [r.key for r in s.get(User, member_id).roles] == ["admin"]

    r = client.post(f"/admin/users/{admin_id}/role", data={"role": "user"}, follow_redirects=True)
    assert b"cannot remove your own admin role" in r.data


def test_admin_audit_page(client):
    _login(client)
    r = client.get("/admin/audit?action=auth.login")
    assert r.status_code == 200
    assert b"auth.login" in r.data


def test_service_guards(client):
    with session_scope(client.application) as s:
        admin = s.query(User).filter(User.email == "admin@example.com").one()
        approved = s.query(Prompt).filter(Prompt.status == "approved").one()
        with pytest.raises(ModerationError):
            approve_prompt(s, approved, admin)
        with pytest.raises(ModerationError):
            reject_prompt(s, approved, admin, "x" * 513)
        reject_prompt(s, approved, admin)
        with pytest.raises(ModerationError):
            reject_prompt(s, approved, admin)
        with pytest.raises(ModerationError):
            toggle_featured(s, approved, admin)
        with pytest.raises(ModerationError):
            set_user_role(s, admin, "owner", admin)
