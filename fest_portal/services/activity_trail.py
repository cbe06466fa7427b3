"""
Activity audit trail.

Callers publish entries with ``record`` and never wait for the write: a
single background worker drains a bounded queue and stores each entry in its
own session. Every failure on that side is logged and dropped, so the action
being audited succeeds or fails on its own.

Logins are recorded at most once per session. A bounded in-process cache of
recently queued sessions catches repeated notifications cheaply, and a
``session_login_markers`` row written in the same transaction as the log
entry makes the guarantee hold across workers, restarts and cache evictions.
"""

import asyncio
import enum
import hashlib
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Union

import httpx
from fastapi import Request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fest_portal.config.settings import settings
from fest_portal.db.models import ActivityLog, SessionLoginMarker
from fest_portal.utils.logging import get_logger
from fest_portal.utils.request_meta import RequestMeta

logger = get_logger()

UserId = Union[None, str, uuid.UUID]


class ActivityAction(str, enum.Enum):
    USER_LOGIN = "user_login"
    LOGOUT = "logout"
    PASSWORD_CHANGED = "password_changed"
    PROFILE_COMPLETED = "profile_completed"
    STUDENTS_REGISTERED = "students_registered"
    SELF_REGISTRATION = "self_registration"
    REGISTRATION_STATUS_UPDATED = "registration_status_updated"
    REGISTRATION_DELETED = "registration_deleted"
    STUDENT_CREATED = "student_created"
    STUDENT_UPDATED = "student_updated"
    STUDENT_DELETED = "student_deleted"
    EVENT_CREATED = "event_created"
    EVENT_UPDATED = "event_updated"
    EVENT_DELETED = "event_deleted"
    SETTINGS_UPDATED = "settings_updated"
    GLOBAL_REGISTRATION_STATUS_CHANGED = "global_registration_status_changed"
    USER_CREATED = "user_created"
    USER_ROLES_UPDATED = "user_roles_updated"


@dataclass
class ActivityEntry:
    user_id: Optional[uuid.UUID]
    action: str
    details: Dict[str, Any] = field(default_factory=dict)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    # Set for login entries only
    session_key: Optional[str] = None


def session_key(session_id: str) -> str:
    """Stable marker key for a session; the raw session id is never stored."""
    return hashlib.sha256(session_id.encode()).hexdigest()


def _as_uuid(value: UserId) -> Optional[uuid.UUID]:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        logger.warning(f"Activity entry has a malformed user id {value!r}, storing it as system")
        return None


class IpLookup:
    """
    Asks a public echo service for this host's public address. Never raises.

    The result describes the server, not the caller, so it is stored as the
    ``server_ip`` detail and never as the entry's client address.
    """

    def __init__(
        self,
        url: str = settings.AUDIT_IP_LOOKUP_URL,
        timeout: float = settings.AUDIT_IP_LOOKUP_TIMEOUT,
    ):
        self.url = url
        self.timeout = timeout

    async def lookup(self) -> Optional[str]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                return response.json().get("ip")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.debug(f"IP lookup failed: {e}")
            return None


class ActivityTrail:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        queue_size: int = settings.AUDIT_QUEUE_SIZE,
        ip_lookup: Optional[IpLookup] = None,
        login_cache_size: int = settings.AUDIT_LOGIN_CACHE_SIZE,
    ):
        self._session_factory = session_factory
        self._queue: "asyncio.Queue[ActivityEntry]" = asyncio.Queue(maxsize=queue_size)
        self._worker: Optional[asyncio.Task] = None
        self._logged_sessions: "OrderedDict[str, None]" = OrderedDict()
        self._login_cache_size = login_cache_size
        self._ip_lookup = ip_lookup

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="activity-trail-worker")
        logger.info("Activity trail worker started")

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain what is queued (bounded by ``timeout``), then stop the worker."""
        if not self.running:
            await self.drain()
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Activity trail stopped with {self.pending} entries unwritten")

        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Activity trail worker stopped")

    async def flush(self) -> None:
        """Wait until every queued entry has been handled."""
        if self.running:
            await self._queue.join()
        else:
            await self.drain()

    async def drain(self) -> None:
        """Write queued entries in the calling task; used when no worker runs."""
        while not self._queue.empty():
            entry = self._queue.get_nowait()
            try:
                await self._write(entry)
            finally:
                self._queue.task_done()

    # Publishing
    def record(
        self,
        user_id: UserId,
        action: Union[str, ActivityAction],
        details: Optional[Dict[str, Any]] = None,
        meta: Optional[RequestMeta] = None,
    ) -> bool:
        """
        Queue an entry. ``user_id`` None marks a system-initiated event.

        Returns:
            False when the entry could not be queued; the caller carries on.
        """
        try:
            meta = meta or RequestMeta()
            entry = ActivityEntry(
                user_id=_as_uuid(user_id),
                action=getattr(action, "value", action),
                details=dict(details or {}),
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
            )
            return self._enqueue(entry)
        except Exception as e:
            logger.error(f"Failed to queue activity {action}: {e}")
            return False

    def record_login(
        self,
        user_id: UserId,
        session_id: str,
        details: Optional[Dict[str, Any]] = None,
        meta: Optional[RequestMeta] = None,
    ) -> bool:
        """
        Queue the login entry for ``session_id`` unless it was already queued.

        Returns:
            True if this call queued the entry.
        """
        if not session_id:
            logger.warning("Login notification without a session id, not recorded")
            return False

        key = session_key(session_id)
        if key in self._logged_sessions:
            logger.debug("Login already recorded for this session")
            return False
        # Marked before queueing; no await between check and mark
        self._remember_session(key)

        try:
            meta = meta or RequestMeta()
            entry = ActivityEntry(
                user_id=_as_uuid(user_id),
                action=ActivityAction.USER_LOGIN.value,
                details=dict(details or {}),
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
                session_key=key,
            )
            queued = self._enqueue(entry)
        except Exception as e:
            logger.error(f"Failed to queue login activity: {e}")
            queued = False

        if not queued:
            # A later notification for this session may still record it
            self._logged_sessions.pop(key, None)
        return queued

    async def record_logout(
        self,
        user_id: UserId,
        details: Optional[Dict[str, Any]] = None,
        meta: Optional[RequestMeta] = None,
    ) -> bool:
        """Write the logout entry now, while the session is still valid."""
        meta = meta or RequestMeta()
        entry = ActivityEntry(
            user_id=_as_uuid(user_id),
            action=ActivityAction.LOGOUT.value,
            details=dict(details or {}),
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        return await self._write(entry, enrich=False)

    def _remember_session(self, key: str) -> None:
        self._logged_sessions[key] = None
        while len(self._logged_sessions) > self._login_cache_size:
            self._logged_sessions.popitem(last=False)

    def _enqueue(self, entry: ActivityEntry) -> bool:
        try:
            self._queue.put_nowait(entry)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Activity queue full, dropping {entry.action} entry")
            return False

    # Worker
    async def _run(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._write(entry)
            finally:
                self._queue.task_done()

    async def _enrich(self, entry: ActivityEntry) -> ActivityEntry:
        if self._ip_lookup is None or "server_ip" in entry.details:
            return entry
        server_ip = await self._ip_lookup.lookup()
        if server_ip is None:
            return entry
        return replace(entry, details={**entry.details, "server_ip": server_ip})

    async def _write(self, entry: ActivityEntry, enrich: bool = True) -> bool:
        if enrich:
            try:
                entry = await self._enrich(entry)
            except Exception as e:
                logger.warning(f"Activity metadata enrichment failed: {e}")

        try:
            async with self._session_factory() as db:
                try:
                    if entry.session_key:
                        db.add(
                            SessionLoginMarker(
                                session_key=entry.session_key, user_id=entry.user_id
                            )
                        )
                        await db.flush()

                    db.add(
                        ActivityLog(
                            user_id=entry.user_id,
                            action=entry.action,
                            details=entry.details,
                            ip_address=entry.ip_address,
                            user_agent=entry.user_agent,
                        )
                    )
                    await db.commit()
                except IntegrityError as e:
                    await db.rollback()
                    if entry.session_key:
                        logger.debug("Login already recorded for this session by another worker")
                    else:
                        logger.error(f"Failed to write activity {entry.action}: {e}")
                    return False
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to write activity {entry.action}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Unexpected error writing activity {entry.action}: {e}")
            return False


def build_activity_trail(session_factory: Callable[[], AsyncSession]) -> ActivityTrail:
    ip_lookup = IpLookup() if settings.AUDIT_IP_LOOKUP_ENABLED else None
    return ActivityTrail(session_factory, ip_lookup=ip_lookup)


def get_activity_trail(request: Request) -> ActivityTrail:
    """Dependency returning the application-wide trail"""
    return request.app.state.activity_trail
