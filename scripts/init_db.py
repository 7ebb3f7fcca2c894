import os
import sys
from pathlib import Path

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.promptlib.models import Category, Permission, Role, User
from app.promptlib.roles import ROLE_ADMIN, ROLE_USER
from scripts._db_utils import resolve_database_url, script_session

PERMISSIONS = (
    ("admin.view", "Admin: view dashboard"),
    ("prompts.moderate", "Prompts: approve, reject and feature"),
    ("prompts.delete", "Prompts: delete"),
    ("categories.manage", "Categories: create and edit"),
    ("blogs.manage", "Blogs: write and publish"),
    ("users.manage", "Users: change roles"),
    ("audit.view", "Audit log: view"),
)

# (category_id, name, icon, description)
DEFAULT_CATEGORIES = (
    ("sermon-prep", "Sermon Preparation", "book-open", "Outlines, illustrations and exegesis helpers for preaching."),
    ("worship", "Worship Planning", "music", "Service orders, song transitions and liturgy ideas."),
    ("small-groups", "Small Groups", "users", "Discussion questions and study guides for group leaders."),
    ("youth", "Youth Ministry", "sparkles", "Games, lessons and messages for students."),
    ("children", "Children's Ministry", "smile", "Lessons and activities for kids."),
    ("pastoral-care", "Pastoral Care", "heart", "Hospital visits, counseling notes and encouragement."),
    ("communications", "Church Communications", "megaphone", "Announcements, newsletters and social posts."),
    ("outreach", "Outreach & Missions", "globe", "Evangelism, community events and mission updates."),
    ("administration", "Church Administration", "clipboard", "Meeting agendas, policies and volunteer scheduling."),
)


def seed_defaults(s: Session, *, admin_email: str | None = None, admin_password: str | None = None) -> None:
    """
    Seed permissions, roles, default categories and (optionally) an admin user.

    Idempotent: existing rows are left alone and an existing admin user's
    password is never overwritten.
    """
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS:
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    role_admin = s.query(Role).filter(Role.key == ROLE_ADMIN).one_or_none()
    if not role_admin:
        role_admin = Role(key=ROLE_ADMIN, name="Administrator")
        s.add(role_admin)
    for p in perms.values():
        if p not in role_admin.permissions:
            role_admin.permissions.append(p)

    role_user = s.query(Role).filter(Role.key == ROLE_USER).one_or_none()
    if not role_user:
        s.add(Role(key=ROLE_USER, name="Member"))

    for category_id, name, icon, description in DEFAULT_CATEGORIES:
        if s.query(Category).filter(Category.category_id == category_id).one_or_none():
            continue
        s.add(Category(category_id=category_id, name=name, icon=icon, description=description))

    if admin_email:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                display_name="Administrator",
                password_hash=generate_password_hash(admin_password or "change-me"),
                is_active=True,
            )
            s.add(user)
        if role_admin not in user.roles:
            user.roles.append(role_admin)
    s.flush()


def seed_only(*, database_url: str | None = None) -> None:
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@promptlib.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    # Direct engine/session so release can run without importing app.wsgi.
    with script_session(resolve_database_url(database_url)) as s:
        seed_defaults(s, admin_email=admin_email, admin_password=admin_password)

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
