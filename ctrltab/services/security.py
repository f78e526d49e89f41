from __future__ import annotations

from functools import wraps

from flask import current_app
from flask_login import current_user
from itsdangerous import BadData, URLSafeTimedSerializer

from ctrltab.extensions import db, login_manager
from ctrltab.models import User
from ctrltab.services.errors import AdminRequiredError, AuthenticationError

TOKEN_SALT = "ctrltab-auth"


def _serializer(secret_key: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key=secret_key, salt=TOKEN_SALT)


def issue_identity_token(secret_key: str, user_id: int) -> str:
    return _serializer(secret_key).dumps({"user_id": user_id})


def verify_identity_token(secret_key: str, token: str, max_age: int) -> int | None:
    """Return the user id carried by ``token``, or ``None`` if it does not verify."""
    try:
        payload = _serializer(secret_key).loads(token, max_age=max_age)
    except BadData:
        return None
    if not isinstance(payload, dict):
        return None
    user_id = payload.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return None
    return user_id


def bearer_token(auth_header: str | None) -> str | None:
    auth_header = auth_header or ""
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header.removeprefix("Bearer ").strip() or None


@login_manager.request_loader
def load_user_from_request(request):
    token = bearer_token(request.headers.get("Authorization"))
    if not token:
        return None
    user_id = verify_identity_token(
        current_app.config["SECRET_KEY"],
        token,
        max_age=current_app.config["TOKEN_MAX_AGE_SECONDS"],
    )
    if user_id is None:
        return None
    return db.session.get(User, user_id)


def api_auth_required(admin=False):
    def decorator(func):
        @wraps(func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                raise AuthenticationError("authentication required")
            if admin and not current_user.is_admin:
                raise AdminRequiredError("admin access required")
            return func(*args, **kwargs)

        return wrapped

    return decorator
