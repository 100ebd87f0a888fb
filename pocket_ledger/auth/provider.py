"""
Authentication Collaborator

DESIGN DECISION: The ledger never authenticates anyone itself. It only
needs to know WHO the current user is and WHEN that changes. Any identity
service (a hosted auth API, an SSO gateway) can sit behind AuthProvider.

InMemoryAuthProvider is a complete local implementation for tests and
offline development. Passwords are stored as salted PBKDF2 hashes only.
"""

import hashlib
import hmac
import inspect
import secrets
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Union
from uuid import uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field

from pocket_ledger.models.results import LedgerErrorKind, OperationResult


logger = structlog.get_logger(__name__)

AuthListener = Callable[[Optional["AuthUser"]], Union[None, Awaitable[None]]]

PBKDF2_ITERATIONS = 120_000
MIN_PASSWORD_LENGTH = 6


class AuthUser(BaseModel):
    """The authenticated identity the ledger is scoped to."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str
    email: str
    full_name: Optional[str] = Field(default=None, max_length=200)


class AuthProvider(ABC):
    """
    Abstract identity collaborator.

    Implementations notify subscribers every time the current user
    changes, including sign-out (listener receives None).
    """

    def __init__(self):
        self._listeners: list[AuthListener] = []

    @property
    @abstractmethod
    def current_user(self) -> Optional[AuthUser]:
        """The signed-in user, or None."""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> OperationResult[AuthUser]:
        pass

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
    ) -> OperationResult[AuthUser]:
        pass

    @abstractmethod
    async def sign_out(self) -> OperationResult:
        pass

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a listener for user changes.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, user: Optional[AuthUser]) -> None:
        for listener in list(self._listeners):
            outcome = listener(user)
            if inspect.isawaitable(outcome):
                await outcome


class InMemoryAuthProvider(AuthProvider):
    """Local email/password accounts kept in a dict."""

    def __init__(self):
        super().__init__()
        # email -> (user, salt, password hash)
        self._accounts: dict[str, tuple[AuthUser, bytes, bytes]] = {}
        self._current: Optional[AuthUser] = None

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current

    @staticmethod
    def _hash(password: str, salt: bytes) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
    ) -> OperationResult[AuthUser]:
        email = (email or "").strip().lower()
        if not email or not password:
            return OperationResult.fail(LedgerErrorKind.INVALID_INPUT, "Please fill in all fields")
        if len(password) < MIN_PASSWORD_LENGTH:
            return OperationResult.fail(
                LedgerErrorKind.INVALID_INPUT,
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters",
            )
        if email in self._accounts:
            return OperationResult.fail(LedgerErrorKind.INVALID_INPUT, "User already registered")

        user = AuthUser(id=str(uuid4()), email=email, full_name=full_name)
        salt = secrets.token_bytes(16)
        self._accounts[email] = (user, salt, self._hash(password, salt))
        logger.info("user_signed_up", user_id=user.id)

        await self._set_current(user)
        return OperationResult.ok(data=user)

    async def sign_in(self, email: str, password: str) -> OperationResult[AuthUser]:
        email = (email or "").strip().lower()
        entry = self._accounts.get(email)
        if entry is None or not hmac.compare_digest(self._hash(password or "", entry[1]), entry[2]):
            logger.warning("sign_in_rejected", email=email)
            return OperationResult.fail(LedgerErrorKind.AUTH_REQUIRED, "Invalid login credentials")

        user = entry[0]
        await self._set_current(user)
        return OperationResult.ok(data=user)

    async def sign_out(self) -> OperationResult:
        await self._set_current(None)
        return OperationResult.ok()

    async def _set_current(self, user: Optional[AuthUser]) -> None:
        previous = self._current
        self._current = user
        if (previous.id if previous else None) != (user.id if user else None):
            await self._notify(user)
