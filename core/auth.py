"""Authentication providers and scoped credential storage.

Auth only gates private-prompt visibility and attributes ``created_by`` on
new prompts and collections; there is no role or policy model.

Updates:
  v0.2.1 - 2026-09-24 - Restore REST sessions from stored JWT claims.
  v0.2.0 - 2026-09-22 - Add REST auth provider sharing the gateway credential store.
  v0.1.0 - 2026-09-13 - Introduce local auth provider with PBKDF2 password hashes.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

import httpx
from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from models.common import has_text, new_id
from models.user_model import User

from .exceptions import AuthError, TransportError, ValidationError
from .transport import decode_json, error_for_response, translate_httpx_error

logger = logging.getLogger("prompt_library.auth")

_PASSWORD_ITERATIONS: Final[int] = 150_000
_PASSWORD_KEY_BYTES: Final[int] = 32
_PASSWORD_SALT_BYTES: Final[int] = 16


@runtime_checkable
class AuthProvider(Protocol):
    """Contract consumed by the library for the signed-in identity."""

    def current_user(self) -> User | None: ...

    async def sign_in(self, email: str, password: str) -> User: ...

    async def sign_up(self, username: str, email: str, password: str) -> User: ...

    async def sign_out(self) -> None: ...


class CredentialStore:
    """Holds the bearer token and user for one session.

    Injected into the REST gateway and auth provider so both observe the same
    lifecycle: set on sign-in, cleared on sign-out or on an auth failure.
    """

    def __init__(self) -> None:
        self._token: str | None = None
        self._user: User | None = None
        self._listeners: list[Callable[[User | None], None]] = []

    @property
    def token(self) -> str | None:
        """Return the active bearer token, if any."""
        return self._token

    @property
    def user(self) -> User | None:
        """Return the user the token belongs to, if any."""
        return self._user

    def set(self, token: str | None, user: User | None) -> None:
        """Store a new session and notify listeners."""
        self._token = token
        self._user = user
        self._emit()

    def clear(self) -> None:
        """Forget the session and notify listeners when one was active."""
        if self._token is None and self._user is None:
            return
        self._token = None
        self._user = None
        self._emit()

    def auth_headers(self) -> dict[str, str]:
        """Return the ``Authorization`` header for the active token."""
        if not self._token:
            return {}
        return {"Authorization": f"Bearer {self._token}"}

    def on_change(self, callback: Callable[[User | None], None]) -> Callable[[], None]:
        """Register *callback* for session changes; returns an unsubscribe function."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _emit(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self._user)
            except Exception:  # pragma: no cover - listener bugs must not break auth
                logger.exception("Credential listener raised an exception")


def _require_fields(**values: str) -> None:
    missing = [name for name, value in values.items() if not has_text(value)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


@dataclass(slots=True)
class _Account:
    user: User
    salt: str
    password_hash: str

    def to_record(self) -> dict[str, Any]:
        return {**self.user.to_record(), "salt": self.salt, "passwordHash": self.password_hash}

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> _Account:
        return cls(
            user=User.from_record(data),
            salt=str(data["salt"]),
            password_hash=str(data["passwordHash"]),
        )


class LocalAuthProvider:
    """Auth provider keeping accounts in memory with optional JSON persistence.

    The document stores ``{"accounts": {email: record}, "session": email}``.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        credentials: CredentialStore | None = None,
        iterations: int = _PASSWORD_ITERATIONS,
    ) -> None:
        self._path = Path(path).expanduser() if path else None
        self._credentials = credentials or CredentialStore()
        self._iterations = iterations
        self._accounts: dict[str, _Account] = {}
        self._load()

    @property
    def credentials(self) -> CredentialStore:
        """Return the credential store populated on sign-in."""
        return self._credentials

    def current_user(self) -> User | None:
        """Return the signed-in user, if any."""
        return self._credentials.user

    def _hash(self, password: str, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=_PASSWORD_KEY_BYTES,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    def _verify(self, account: _Account, password: str) -> bool:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=_PASSWORD_KEY_BYTES,
            salt=base64.b64decode(account.salt),
            iterations=self._iterations,
        )
        try:
            kdf.verify(password.encode("utf-8"), base64.b64decode(account.password_hash))
        except InvalidKey:
            return False
        return True

    async def sign_in(self, email: str, password: str) -> User:
        """Start a session for the account matching *email* and *password*."""
        _require_fields(email=email, password=password)
        account = self._accounts.get(email.strip().lower())
        if account is None or not self._verify(account, password):
            raise AuthError("Invalid email or password")
        self._credentials.set(secrets.token_urlsafe(24), account.user)
        self._save()
        logger.info("Signed in local user", extra={"user_id": account.user.id})
        return account.user

    async def sign_up(self, username: str, email: str, password: str) -> User:
        """Create an account and sign it in."""
        _require_fields(username=username, email=email, password=password)
        key = email.strip().lower()
        if key in self._accounts:
            raise ValidationError("An account with this email already exists")
        salt = os.urandom(_PASSWORD_SALT_BYTES)
        user = User(id=new_id(), username=username.strip(), email=key)
        self._accounts[key] = _Account(
            user=user,
            salt=base64.b64encode(salt).decode("ascii"),
            password_hash=base64.b64encode(self._hash(password, salt)).decode("ascii"),
        )
        self._credentials.set(secrets.token_urlsafe(24), user)
        self._save()
        logger.info("Registered local user", extra={"user_id": user.id})
        return user

    async def sign_out(self) -> None:
        """End the current session."""
        self._credentials.clear()
        self._save()

    def _load(self) -> None:
        if self._path is None or not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            for key, record in (payload.get("accounts") or {}).items():
                self._accounts[key] = _Account.from_record(record)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise TransportError(f"Unable to read auth store {self._path}") from exc
        session = payload.get("session")
        if session and session in self._accounts:
            self._credentials.set(secrets.token_urlsafe(24), self._accounts[session].user)

    def _save(self) -> None:
        if self._path is None:
            return
        user = self._credentials.user
        document = {
            "accounts": {key: account.to_record() for key, account in self._accounts.items()},
            "session": user.email if user is not None else None,
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        except OSError as exc:
            raise TransportError(f"Unable to write auth store {self._path}") from exc


def decode_token_claims(token: str) -> dict[str, Any]:
    """Return the unverified JWT payload claims of *token*.

    Raises:
      ValueError: when the token is not a decodable JWT.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("Token is not a JWT")
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (binascii.Error, UnicodeError, json.JSONDecodeError) as exc:
        raise ValueError("Token payload is not valid JSON") from exc
    if not isinstance(claims, dict):
        raise ValueError("Token payload is not an object")
    return claims


@dataclass(slots=True)
class RestAuthProvider:
    """HTTPX-backed auth provider for the REST API (``/auth/login``, ``/auth/signup``)."""

    base_url: str
    credentials: CredentialStore = field(default_factory=CredentialStore)
    timeout: float = 10.0
    client_factory: Callable[[], httpx.AsyncClient] | None = None

    def current_user(self) -> User | None:
        """Return the user attached to the stored credentials."""
        return self.credentials.user

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        manage_client = self.client_factory is None
        if self.client_factory is None:
            client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        else:
            client = self.client_factory()
        try:
            response = await client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise translate_httpx_error(exc) from exc
        finally:
            if manage_client:
                await client.aclose()
        if response.is_error:
            raise error_for_response(response)
        return decode_json(response)

    def _session_from_payload(self, payload: Any) -> User:
        if not isinstance(payload, dict):
            raise TransportError("Unexpected auth response payload")
        token = payload.get("access_token") or payload.get("token")
        user_record = payload.get("user") if isinstance(payload.get("user"), dict) else payload
        try:
            user = User.from_record(user_record)
        except (KeyError, TypeError) as exc:
            raise TransportError("Auth response did not include a user") from exc
        self.credentials.set(str(token) if token else None, user)
        return user

    async def sign_in(self, email: str, password: str) -> User:
        """Exchange *email* and *password* for a bearer token."""
        _require_fields(email=email, password=password)
        payload = await self._post("/auth/login", {"email": email.strip(), "password": password})
        return self._session_from_payload(payload)

    async def sign_up(self, username: str, email: str, password: str) -> User:
        """Register an account; a returned token signs the user in."""
        _require_fields(username=username, email=email, password=password)
        payload = await self._post(
            "/auth/signup",
            {"username": username.strip(), "email": email.strip(), "password": password},
        )
        return self._session_from_payload(payload)

    async def sign_out(self) -> None:
        """Forget the stored token."""
        self.credentials.clear()

    def restore_session(self, token: str) -> User | None:
        """Rebuild the signed-in user from a previously issued *token*.

        An undecodable token clears the credential store and returns ``None``.
        """
        try:
            claims = decode_token_claims(token)
        except ValueError:
            logger.warning("Discarding undecodable stored token")
            self.credentials.clear()
            return None
        subject = claims.get("sub") or claims.get("userId") or claims.get("id")
        if not subject:
            logger.warning("Discarding stored token without a subject claim")
            self.credentials.clear()
            return None
        user = User(
            id=str(subject),
            username=str(claims.get("username") or ""),
            email=str(claims.get("email") or ""),
        )
        self.credentials.set(token, user)
        return user


__all__ = [
    "AuthProvider",
    "CredentialStore",
    "LocalAuthProvider",
    "RestAuthProvider",
    "decode_token_claims",
]
