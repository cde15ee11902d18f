"""
Session Store
=============

Owns the auth token, driver identity, driver snapshot and login time.

* ``login`` validates locally, authenticates, checks the token shape and
  persists the session.
* ``is_logged_in`` is network-bound: TTL check first, then a profile
  liveness call.  It degrades to ``False`` and never raises.
* ``logout`` clears the session keys and runs the registered logout hooks,
  through which the owners of the other persisted keys (tracking flag,
  availability flag, push token) clear their own state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from xdrive_driver.api.endpoints import DriverApi
from xdrive_driver.api.schemas import Driver
from xdrive_driver.domain.entities import Session, utcnow
from xdrive_driver.domain.enums import ErrorKind
from xdrive_driver.domain.errors import (
    INVALID_CREDENTIALS,
    AuthError,
    DriverClientError,
    InvalidInput,
    MalformedResponse,
)
from xdrive_driver.domain.validation import validate_login, validate_registration
from xdrive_driver.infrastructure.storage import LocalStorage, StorageKeys

logger = logging.getLogger(__name__)

LogoutHook = Callable[[], Awaitable[None]]

SESSION_KEYS = (
    StorageKeys.AUTH_TOKEN,
    StorageKeys.DRIVER_ID,
    StorageKeys.DRIVER_PROFILE,
    StorageKeys.LOGIN_TIME,
)


def is_compact_token(token: str) -> bool:
    """Three non-empty dot-separated segments (header.payload.signature)."""
    parts = token.split(".")
    return len(parts) == 3 and all(parts)


class SessionStore:
    def __init__(
        self,
        storage: LocalStorage,
        api: DriverApi,
        *,
        ttl: timedelta = timedelta(hours=24),
        device_token: Callable[[], Awaitable[Optional[str]]] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.api = api
        self.ttl = ttl
        self.device_token = device_token
        self.clock = clock
        self._logout_hooks: list[LogoutHook] = []

    def add_logout_hook(self, hook: LogoutHook) -> None:
        self._logout_hooks.append(hook)

    # ── Public API ────────────────────────────────────────────────────

    async def login(self, email: str, password: str) -> Session:
        errors = validate_login(email, password)
        if errors:
            raise InvalidInput(errors)

        email = email.strip().lower()
        device_token = await self.device_token() if self.device_token else None
        logger.info("Logging in %s", email)

        try:
            data = await self.api.login(email, password, device_token)
        except AuthError as exc:
            raise AuthError(INVALID_CREDENTIALS) from exc

        if not data.token:
            raise MalformedResponse("No token received from the server")
        if not is_compact_token(data.token):
            raise MalformedResponse("Malformed token received from the server")
        if data.driver is None:
            raise MalformedResponse("No driver profile received from the server")

        session = Session(
            auth_token=data.token,
            driver_id=str(data.driver.id),
            login_timestamp=self.clock(),
        )
        await self._persist(session, data.driver)
        logger.info("Driver %s logged in", session.driver_id)
        return session

    async def logout(self) -> None:
        await self.storage.delete(*SESSION_KEYS)
        for hook in self._logout_hooks:
            try:
                await hook()
            except Exception:
                logger.exception("Logout hook %r failed", hook)
        logger.info("Logged out")

    async def is_logged_in(self) -> bool:
        try:
            session = await self.get_session()
            if session is None:
                return False
            if session.is_expired(self.clock(), self.ttl):
                logger.info("Session expired, logging out")
                await self.logout()
                return False
            try:
                await self.api.get_profile()
            except DriverClientError as exc:
                logger.info("Session rejected (%s): %s", exc.kind.value, exc.message)
                await self.logout()
                return False
            return True
        except Exception:
            logger.exception("Could not verify the session")
            return False

    async def get_current_driver(self) -> Optional[Driver]:
        if not await self.token():
            return None
        try:
            driver = await self.api.get_profile()
        except DriverClientError as exc:
            if exc.kind is ErrorKind.AUTH:
                await self.logout()
            else:
                logger.warning("Could not fetch driver profile: %s", exc.message)
            return None
        await self.storage.set(StorageKeys.DRIVER_PROFILE, driver.model_dump(by_alias=True))
        return driver

    async def update_profile(self, profile: dict[str, Any]) -> Driver:
        if not await self.token():
            raise AuthError()
        driver = await self.api.update_profile(profile)
        await self.storage.set(StorageKeys.DRIVER_PROFILE, driver.model_dump(by_alias=True))
        return driver

    async def register(self, form: dict[str, Any]) -> Any:
        errors = validate_registration(form)
        if errors:
            raise InvalidInput(errors)
        payload = dict(form, email=form["email"].strip().lower())
        return await self.api.register(payload)

    async def can_auto_login(self) -> bool:
        """Token present and TTL not elapsed; no network."""
        session = await self.get_session()
        return session is not None and not session.is_expired(self.clock(), self.ttl)

    # ── Reads ─────────────────────────────────────────────────────────

    async def token(self) -> Optional[str]:
        return await self.storage.get(StorageKeys.AUTH_TOKEN)

    async def driver_id(self) -> Optional[str]:
        return await self.storage.get(StorageKeys.DRIVER_ID)

    async def cached_driver(self) -> Optional[Driver]:
        raw = await self.storage.get(StorageKeys.DRIVER_PROFILE)
        return Driver.model_validate(raw) if raw else None

    async def get_session(self) -> Optional[Session]:
        token = await self.token()
        driver_id = await self.driver_id()
        if not token or not driver_id:
            return None
        raw_time = await self.storage.get(StorageKeys.LOGIN_TIME)
        # no recorded login time: treat as logged in just now
        login_time = datetime.fromisoformat(raw_time) if raw_time else self.clock()
        return Session(auth_token=token, driver_id=driver_id, login_timestamp=login_time)

    # ── Internals ─────────────────────────────────────────────────────

    async def _persist(self, session: Session, driver: Driver) -> None:
        await self.storage.set(StorageKeys.AUTH_TOKEN, session.auth_token)
        await self.storage.set(StorageKeys.DRIVER_ID, session.driver_id)
        await self.storage.set(StorageKeys.DRIVER_PROFILE, driver.model_dump(by_alias=True))
        await self.storage.set(StorageKeys.LOGIN_TIME, session.login_timestamp.isoformat())
