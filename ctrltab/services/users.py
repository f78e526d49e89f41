from __future__ import annotations

import logging
import re

from werkzeug.security import check_password_hash, generate_password_hash

from ctrltab.models import Collection, User
from ctrltab.services.common import clean_text, to_bool
from ctrltab.services.errors import (
    AuthenticationError,
    ConflictError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)

log = logging.getLogger(__name__)

ACCENT_COLOR_KEY = "accent_color"
ACCENT_COLOR_PATTERN = re.compile(r"^#[0-9a-f]{6}$", re.IGNORECASE)

# Checked against when the username is unknown so both failures cost a hash.
_DUMMY_PASSWORD_HASH = generate_password_hash("ctrltab-unknown-user")


class UserDirectory:
    def __init__(self, session, min_password_length: int = 6):
        self.session = session
        self.min_password_length = min_password_length

    def _check_password_length(self, password: str) -> None:
        if len(password) < self.min_password_length:
            raise ValidationError(
                f"password must be at least {self.min_password_length} characters"
            )

    def _username_taken(self, username: str, exclude_id: int | None = None) -> bool:
        query = self.session.query(User).filter_by(username=username)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        return query.first() is not None

    def admin_count(self) -> int:
        return self.session.query(User).filter_by(is_admin=True).count()

    def authenticate(self, username: str, password: str) -> User:
        username = clean_text(username)
        user = self.session.query(User).filter_by(username=username).first()
        if user is None:
            check_password_hash(_DUMMY_PASSWORD_HASH, password or "")
            raise AuthenticationError("invalid credentials")
        if not user.check_password(password or ""):
            raise AuthenticationError("invalid credentials")
        return user

    def change_password(self, user: User, current: str, new: str) -> None:
        if not current or not new:
            raise ValidationError("current and new password are required")
        if not user.check_password(current):
            raise ValidationError("current password is incorrect")
        self._check_password_length(new)
        user.set_password(new)
        self.session.commit()

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("user not found")
        return user

    def list_users(self) -> list[User]:
        query = self.session.query(User)
        return query.order_by(User.created_at.asc(), User.id.asc()).all()

    def create_user(self, username: str, password: str, is_admin=False) -> User:
        username = clean_text(username)
        password = password or ""
        if not username or not password:
            raise ValidationError("username and password are required")
        self._check_password_length(password)
        if self._username_taken(username):
            raise ConflictError("username already exists")

        user = User(username=username, is_admin=to_bool(is_admin), preferences={})
        user.set_password(password)
        self.session.add(user)
        self.session.commit()
        return user

    def update_user(self, acting_user: User, user_id: int, changes: dict) -> User:
        user = self.get(user_id)
        updates = {}

        if "username" in changes:
            username = clean_text(changes.get("username"))
            if not username:
                raise ValidationError("username cannot be empty")
            if self._username_taken(username, exclude_id=user.id):
                raise ConflictError("username already exists")
            updates["username"] = username
        if "is_admin" in changes:
            is_admin = to_bool(changes.get("is_admin"))
            if user.id == acting_user.id and user.is_admin and not is_admin:
                raise InvariantViolation("you cannot remove your own admin rights")
            updates["is_admin"] = is_admin
        password = changes.get("password") or ""
        if password:
            self._check_password_length(password)

        for field, value in updates.items():
            setattr(user, field, value)
        if password:
            user.set_password(password)
        self.session.commit()
        return user

    def delete_user(self, acting_user: User, user_id: int) -> None:
        user = self.get(user_id)
        if user.id == acting_user.id:
            raise InvariantViolation("you cannot delete your own account")
        if user.is_admin and self.admin_count() <= 1:
            raise InvariantViolation("cannot delete the last admin")
        self.session.delete(user)
        self.session.commit()

    def seed_admin(self, username: str, password: str) -> User:
        """Make sure an admin exists and matches the configured credentials.

        Safe to run on every start. Ownerless collections left over from the
        single-user schema are handed to the admin.
        """
        admins = self.session.query(User).filter_by(is_admin=True)
        admin = admins.order_by(User.id.asc()).first()
        if admin is None:
            admin = self.session.query(User).filter_by(username=username).first()
            if admin is None:
                admin = User(username=username, preferences={})
                admin.set_password(password)
                self.session.add(admin)
                log.info("created bootstrap admin %r", username)
            else:
                admin.set_password(password)
                log.info("promoted existing user %r to admin", username)
            admin.is_admin = True
            self.session.flush()
        else:
            if admin.username != username:
                if self._username_taken(username, exclude_id=admin.id):
                    log.warning(
                        "cannot rename admin %r to %r: username is taken",
                        admin.username,
                        username,
                    )
                else:
                    log.info("renaming admin %r to %r", admin.username, username)
                    admin.username = username
            if not admin.check_password(password):
                log.info("resetting admin password from configuration")
                admin.set_password(password)

        adopted = (
            self.session.query(Collection).filter(Collection.user_id.is_(None))
            .update({"user_id": admin.id}, synchronize_session=False)
        )
        if adopted:
            log.info("assigned %d ownerless collections to %r", adopted, admin.username)
        self.session.commit()
        return admin

    def get_preferences(self, user: User) -> dict:
        return dict(user.preferences or {})

    def update_preferences(self, user: User, payload: dict) -> dict:
        preferences = dict(user.preferences or {})
        accent = payload.get(ACCENT_COLOR_KEY)
        if accent is None or (isinstance(accent, str) and not accent.strip()):
            preferences.pop(ACCENT_COLOR_KEY, None)
        elif isinstance(accent, str) and ACCENT_COLOR_PATTERN.match(accent.strip()):
            preferences[ACCENT_COLOR_KEY] = accent.strip().lower()
        else:
            raise ValidationError("accent_color must look like #rrggbb")
        user.preferences = preferences
        self.session.commit()
        return dict(preferences)
