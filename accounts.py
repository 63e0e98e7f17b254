"""
User directory and sessions.

A session is a bearer token pointing at a user id. The user record is looked
up on every request, so a profile edit is visible through the session
immediately.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import config
from results import Result
from schemas import User, Session, RegisterRequest, ProfileUpdate
from security import hash_password, verify_password, new_token
from storage import Store, DuplicateError

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("username", "full_name", "phone", "address", "avatar_url")
REQUIRED_FIELDS = ("username", "full_name")


def public_user(doc: dict) -> dict:
    return {k: v for k, v in doc.items() if k != "password_hash"}


class UserProfileStore:
    def __init__(self, store: Store, session_ttl: timedelta = None):
        self.store = store
        self.session_ttl = session_ttl or timedelta(hours=config.SESSION_TTL_HOURS)

    def _open_session(self, user_id: str) -> str:
        session = Session(token=new_token(), user_id=user_id, created_at=datetime.now(timezone.utc))
        self.store.create_session(session.model_dump())
        return session.token

    def register(self, payload: RegisterRequest) -> Result:
        """Create a user and log them in. Value is (token, user)."""
        if self.store.find_user_by_email(payload.email) is not None:
            return Result.conflict("Email already registered")

        user = User(
            email=payload.email,
            password_hash=hash_password(payload.password),
            username=payload.username,
            full_name=payload.full_name,
            joined_at=datetime.now(timezone.utc),
        )
        try:
            user_id = self.store.insert_user(user.model_dump())
        except DuplicateError:
            # lost a race with a concurrent registration
            return Result.conflict("Email already registered")

        logger.info("Registered user %s", user_id)
        token = self._open_session(user_id)
        return Result.success((token, public_user(self.store.get_user(user_id))))

    def login(self, email: str, password: str) -> Result:
        user = self.store.find_user_by_email(email)
        if user is None:
            logger.warning("Login for unknown email")
            return Result.not_found("User not found")
        if not verify_password(password, user.get("password_hash", "")):
            logger.warning("Wrong password for user %s", user["id"])
            return Result.unauthorized()
        token = self._open_session(user["id"])
        return Result.success((token, public_user(user)))

    def logout(self, token: str) -> Result:
        if not self.store.delete_session(token):
            return Result.not_found("Session not found")
        return Result.success()

    def current_user(self, token: Optional[str]) -> Result:
        if not token:
            return Result.unauthorized("Not authenticated")
        session = self.store.get_session(token)
        if session is None:
            return Result.unauthorized("Session expired or invalid")
        created = session["created_at"]
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - created > self.session_ttl:
            self.store.delete_session(token)
            return Result.unauthorized("Session expired or invalid")
        user = self.store.get_user(session["user_id"])
        if user is None:
            return Result.unauthorized("Session expired or invalid")
        return Result.success(public_user(user))

    def update_profile(self, user_id: str, changes: ProfileUpdate) -> Result:
        fields = {
            k: v for k, v in changes.model_dump(exclude_unset=True).items()
            if k in PROFILE_FIELDS and (v is not None or k not in REQUIRED_FIELDS)
        }
        if not fields:
            user = self.store.get_user(user_id)
        else:
            user = self.store.update_user(user_id, fields)
        if user is None:
            return Result.not_found("User not found")
        return Result.success(public_user(user))
