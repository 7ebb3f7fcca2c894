import secrets

from flask import Request, current_app, session

CSRF_SESSION_KEY = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


def csrf_required(req: Request) -> bool:
    if not current_app.config.get("CSRF_ENABLED", True):
        return False
    if req.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return False
    # Sign-in/out forms are rate limited instead.
    return not (req.endpoint or "").startswith("auth.")


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from form, header, or JSON body."""
    token = req.headers.get(CSRF_HEADER) or req.form.get(CSRF_SESSION_KEY)
    if not token and req.is_json:
        payload = req.get_json(silent=True) or {}
        if isinstance(payload, dict):
            token = payload.get(CSRF_SESSION_KEY)
    expected = session.get(CSRF_SESSION_KEY)
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))
