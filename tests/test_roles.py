from app.promptlib.models import Role, User
from app.promptlib.roles import (
    ADMIN_FEATURES,
    can_access_admin_feature,
    has_role,
    is_admin,
    primary_role,
    role_badge_variant,
    role_display_name,
    visible_routes,
)


def _user(*role_keys, active=True):
    u = User(email="x@example.com", password_hash="x", is_active=active)
    u.roles = [Role(key=k, name=k) for k in role_keys]
    return u


def test_primary_role():
    assert primary_role(None) is None
    assert primary_role(_user("user")) == "user"
    assert primary_role(_user("user", "admin")) == "admin"
    assert primary_role(_user()) == "user"
    assert primary_role(_user("admin", active=False)) is None


def test_has_role():
    assert has_role("admin", "admin")
    assert has_role("admin", "user")
    assert has_role("user", "user")
    assert not has_role("user", "admin")
    assert not has_role(None, "user")
    assert is_admin("admin") and not is_admin("user")


def test_display_name_and_badge():
    assert role_display_name("admin") == "Administrator"
    assert role_display_name("user") == "Member"
    assert role_display_name(None) == "Guest"
    assert role_badge_variant("admin") == "default"
    assert role_badge_variant("user") == "secondary"
    assert role_badge_variant(None) == "outline"


def test_admin_features():
    assert can_access_admin_feature("admin", ADMIN_FEATURES["APPROVE_PROMPTS"])
    assert not can_access_admin_feature("user", ADMIN_FEATURES["APPROVE_PROMPTS"])
    assert not can_access_admin_feature("admin", "launch_rockets")


def test_visible_routes():
    assert visible_routes(False, None) == ["/", "/directory", "/subscribe"]
    assert visible_routes(True, "user") == ["/", "/directory", "/subscribe", "/submit", "/profile"]
    assert "/admin" in visible_routes(True, "admin")
