"""Freebox authentication primitives.

Implements the challenge/response scheme used by the Freebox OS API.

The login flow:
1. GET /login to obtain a challenge (and a password salt)
2. Compute HMAC-SHA1 of the challenge keyed with the app private token
3. POST /login/session with { app_id, password: <hex digest> }
4. Keep the returned session token and send it as X-Fbx-App-Auth

New applications first get a private token through the authorization flow:
POST /login/authorize, then poll /login/authorize/<track_id> until the user
grants access on the box front panel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from Crypto.Hash import HMAC, SHA1

from .exceptions import DecodingError

# Header carrying the session token on authenticated requests
AUTH_HEADER = "X-Fbx-App-Auth"

# The Freebox drops idle sessions after this delay
SESSION_VALIDITY = timedelta(minutes=30)

# Authorization tracking statuses
AUTHORIZATION_UNKNOWN = "unknown"
AUTHORIZATION_PENDING = "pending"
AUTHORIZATION_TIMEOUT = "timeout"
AUTHORIZATION_GRANTED = "granted"
AUTHORIZATION_DENIED = "denied"


def compute_password(private_token: str, challenge: str) -> str:
    """Compute the login password for a challenge.

    Args:
        private_token: The application private token (HMAC key).
        challenge: The challenge string returned by the Freebox (message).

    Returns:
        The hexadecimal HMAC-SHA1 digest.
    """
    mac = HMAC.new(private_token.encode("utf-8"), digestmod=SHA1)
    mac.update(challenge.encode("utf-8"))
    return mac.hexdigest()


@dataclass
class Challenge:
    """Login challenge, only valid for one handshake."""

    challenge: str
    logged_in: bool = False
    password_salt: Optional[str] = None
    password_set: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Challenge:
        """Create from API response dict."""
        challenge = data["challenge"]
        if not isinstance(challenge, str):
            raise DecodingError(f"expected a string login challenge, got {type(challenge).__name__}")
        return cls(
            challenge=challenge,
            logged_in=data.get("logged_in", False),
            password_salt=data.get("password_salt"),
            password_set=data.get("password_set", False),
        )


@dataclass
class Permissions:
    """Capabilities granted to the application session."""

    settings: bool = False
    contacts: bool = False
    calls: bool = False
    explorer: bool = False
    downloader: bool = False
    parental: bool = False
    pvr: bool = False
    home: bool = False
    camera: bool = False
    profile: bool = False
    player: bool = False
    tv: bool = False
    wdo: bool = False
    vm: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Permissions:
        """Create from API response dict, ignoring unknown flags."""
        if not isinstance(data, dict):
            raise DecodingError(f"expected a JSON object for permissions, got {type(data).__name__}")
        return cls(**{k: bool(v) for k, v in data.items() if k in cls.__dataclass_fields__})

    def to_dict(self) -> Dict[str, bool]:
        """Convert to dictionary."""
        return dict(self.__dict__)

    def granted(self) -> List[str]:
        """Get the names of the granted permissions."""
        return [name for name, value in self.__dict__.items() if value]


@dataclass
class SessionResult:
    """Result of the session token exchange."""

    session_token: str
    permissions: Permissions = field(default_factory=Permissions)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> SessionResult:
        """Create from API response dict."""
        session_token = data["session_token"]
        if not isinstance(session_token, str):
            raise DecodingError(f"expected a string session token, got {type(session_token).__name__}")
        permissions = data.get("permissions")
        return cls(
            session_token=session_token,
            permissions=Permissions.from_dict(permissions if permissions is not None else {}),
        )


@dataclass(frozen=True)
class Session:
    """An open session. Replaced wholesale on renewal, never mutated."""

    token: str
    expires_at: datetime

    @classmethod
    def open(cls, token: str, validity: timedelta = SESSION_VALIDITY) -> Session:
        """Start a session valid for ``validity`` from now."""
        return cls(token=token, expires_at=datetime.now(timezone.utc) + validity)

    @property
    def expired(self) -> bool:
        """Check if the advisory validity window has elapsed."""
        return datetime.now(timezone.utc) >= self.expires_at


@dataclass
class AuthorizationRequest:
    """Application registration request."""

    app_id: str
    app_name: str
    app_version: str
    device_name: str

    def to_payload(self) -> Dict[str, str]:
        """Convert to request payload."""
        return {
            "app_id": self.app_id,
            "app_name": self.app_name,
            "app_version": self.app_version,
            "device_name": self.device_name,
        }


@dataclass
class AuthorizationGrant:
    """Pending application registration."""

    app_token: str
    track_id: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AuthorizationGrant:
        """Create from API response dict."""
        return cls(app_token=data["app_token"], track_id=int(data["track_id"]))


@dataclass
class AuthorizationState:
    """Tracking state of an application registration."""

    status: str
    challenge: Optional[str] = None
    password_salt: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AuthorizationState:
        """Create from API response dict."""
        return cls(
            status=data["status"],
            challenge=data.get("challenge"),
            password_salt=data.get("password_salt"),
        )
