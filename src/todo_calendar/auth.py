"""Identity providers.

The calendar only needs to know who is signed in (id and email) and how to
sign in, sign up and sign out. Without a user, range loads are skipped and
mutations are refused.
"""

import json
import logging
import os
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import AuthenticationError, NotSignedInError, RemoteError, ValidationError
from .gateway.supabase import SupabaseClient


# Refresh a little before the access token actually expires.
REFRESH_MARGIN_SECONDS = 60


@dataclass
class User:
    """The signed-in user."""
    id: str
    email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(id=str(data["id"]), email=data.get("email"))


class IdentityProvider(ABC):
    """Opaque source of the current user."""

    @abstractmethod
    def current_user(self) -> Optional[User]:
        pass

    @property
    def access_token(self) -> Optional[str]:
        return None

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> User:
        """Sign in with email and password.

        Raises:
            AuthenticationError: If the credentials are rejected
        """
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> User:
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        pass

    async def ensure_fresh(self) -> None:
        """Renew credentials that are about to expire."""
        pass

    def require_user(self) -> User:
        """Return the current user or raise NotSignedInError."""
        user = self.current_user()
        if user is None:
            raise NotSignedInError("Sign in first")
        return user


class StaticIdentity(IdentityProvider):
    """Identity without a backend, used with the in-memory gateway."""

    def __init__(self, user: Optional[User] = None):
        self._user = user

    def current_user(self) -> Optional[User]:
        return self._user

    async def sign_in(self, email: str, password: str) -> User:
        _check_credentials(email, password)
        self._user = User(id=str(uuid.uuid5(uuid.NAMESPACE_URL, email.lower())), email=email)
        return self._user

    async def sign_up(self, email: str, password: str) -> User:
        return await self.sign_in(email, password)

    async def sign_out(self) -> None:
        self._user = None


class SupabaseAuth(IdentityProvider):
    """Supabase auth over HTTP, with the session kept in a local file."""

    def __init__(self, client: SupabaseClient, session_file: Optional[Path] = None):
        """Initialize the provider.

        Args:
            client: HTTP client for the project
            session_file: Where to persist the session between runs; nothing
                is persisted when omitted
        """
        self.client = client
        self.session_file = session_file
        self.logger = logging.getLogger(__name__)
        self._user: Optional[User] = None
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._expires_at: Optional[float] = None
        self._load_session()

    def current_user(self) -> Optional[User]:
        return self._user

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    async def sign_in(self, email: str, password: str) -> User:
        _check_credentials(email, password)
        data = await self.client.request(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        user = self._store_session(data)
        self.logger.info(f"Signed in as {user.email}")
        return user

    async def sign_up(self, email: str, password: str) -> User:
        _check_credentials(email, password)
        data = await self.client.request(
            "POST", "/auth/v1/signup",
            json={"email": email, "password": password},
        )
        if data and data.get("access_token"):
            return self._store_session(data)

        # Projects that require email confirmation return the user without a session.
        user_data = (data or {}).get("user") or data or {}
        if not user_data.get("id"):
            raise AuthenticationError("Sign-up returned no user")
        self.logger.info(f"Signed up {email}; confirm the email address before signing in")
        return User.from_dict(user_data)

    async def sign_out(self) -> None:
        token = self._access_token
        try:
            if token:
                await self.client.request("POST", "/auth/v1/logout", token=token)
        except RemoteError as e:
            self.logger.warning(f"Remote sign-out failed, clearing local session anyway: {e}")
        finally:
            self._clear_session()

    async def ensure_fresh(self) -> None:
        if not self._refresh_token or self._expires_at is None:
            return
        if time.time() < self._expires_at - REFRESH_MARGIN_SECONDS:
            return
        self.logger.debug("Refreshing access token")
        try:
            data = await self.client.request(
                "POST", "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": self._refresh_token},
            )
        except AuthenticationError:
            self._clear_session()
            raise
        self._store_session(data)

    # Session persistence

    def _store_session(self, data: Optional[Dict[str, Any]]) -> User:
        if not data or not data.get("access_token") or not data.get("user"):
            raise AuthenticationError("Auth response did not contain a session")
        self._user = User.from_dict(data["user"])
        self._access_token = data["access_token"]
        self._refresh_token = data.get("refresh_token")
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = time.time() + float(data["expires_in"])
        self._expires_at = float(expires_at) if expires_at is not None else None
        self._save_session()
        return self._user

    def _save_session(self):
        if self.session_file is None:
            return
        self.session_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "user": self._user.to_dict() if self._user else None,
            "access_token": self._access_token,
            "refresh_token": self._refresh_token,
            "expires_at": self._expires_at,
        }
        self.session_file.write_text(json.dumps(payload, indent=2))
        os.chmod(self.session_file, 0o600)

    def _load_session(self):
        if self.session_file is None or not self.session_file.exists():
            return
        try:
            payload = json.loads(self.session_file.read_text())
        except (OSError, ValueError) as e:
            self.logger.warning(f"Ignoring unreadable session file {self.session_file}: {e}")
            return
        if payload.get("user") and payload.get("access_token"):
            self._user = User.from_dict(payload["user"])
            self._access_token = payload["access_token"]
            self._refresh_token = payload.get("refresh_token")
            self._expires_at = payload.get("expires_at")

    def _clear_session(self):
        self._user = None
        self._access_token = None
        self._refresh_token = None
        self._expires_at = None
        if self.session_file is not None and self.session_file.exists():
            self.session_file.unlink()


def _check_credentials(email: str, password: str):
    if not email or "@" not in email:
        raise ValidationError("A valid email address is required")
    if not password:
        raise ValidationError("A password is required")
