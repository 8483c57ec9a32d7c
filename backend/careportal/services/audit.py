"""Audit trail: non-blocking recording and admin queries.

Services call ``AuditRecorder.log_audit_event`` after acting. The call only
enqueues the entry; a background task writes it to an ``AuditSink``. A full
queue or a failing sink loses the entry and logs the loss, but never changes
the outcome of the operation that triggered it.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional, Protocol

from sqlalchemy import String, cast, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from careportal.errors import AuditWriteFailed, ValidationFailed
from careportal.models import AuditAction, AuditLog, ResourceType, StaffIdentity
from careportal.models.base import icontains, utcnow
from careportal.services.policy import PolicyEngine
from careportal.services.principal import Principal

logger = logging.getLogger("careportal.audit")


@dataclass(frozen=True)
class AuditEntry:
    """One immutable audit record, optionally resolved with its actor."""

    id: uuid.UUID
    user_id: Optional[uuid.UUID]
    action: str
    resource_type: str
    resource_id: Optional[uuid.UUID]
    details: Optional[dict[str, str]]
    created_at: datetime
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None

    def details_text(self) -> str:
        """Stringified detail payload used by text search."""
        if not self.details:
            return ""
        return json.dumps(self.details, sort_keys=True, ensure_ascii=False)


@dataclass(frozen=True)
class AuditFilters:
    action_equals: Optional[AuditAction] = None
    resource_type_equals: Optional[str] = None
    text_search: Optional[str] = None


class AuditSink(Protocol):
    async def append(self, entry: AuditEntry) -> None:
        ...

    async def query(self, filters: AuditFilters, limit: int) -> list[AuditEntry]:
        ...


def _stringify_details(details: Optional[Mapping[str, Any]]) -> Optional[dict[str, str]]:
    if details is None:
        return None
    return {str(key): "" if value is None else str(value) for key, value in details.items()}


class SQLAuditSink:
    """Audit sink backed by the ``audit_logs`` table.

    Each write uses its own session so the entry does not depend on the
    request transaction that triggered it.
    """

    def __init__(self, session_factory: Callable[[], contextlib.AbstractAsyncContextManager[AsyncSession]]):
        self.session_factory = session_factory

    async def append(self, entry: AuditEntry) -> None:
        try:
            async with self.session_factory() as session:
                session.add(
                    AuditLog(
                        id=entry.id,
                        user_id=entry.user_id,
                        action=entry.action,
                        resource_type=entry.resource_type,
                        resource_id=entry.resource_id,
                        details=entry.details,
                        created_at=entry.created_at,
                    )
                )
        except SQLAlchemyError as exc:
            raise AuditWriteFailed(str(exc)) from exc

    async def query(self, filters: AuditFilters, limit: int) -> list[AuditEntry]:
        stmt = select(AuditLog, StaffIdentity).outerjoin(
            StaffIdentity, StaffIdentity.id == AuditLog.user_id
        )
        if filters.action_equals:
            stmt = stmt.where(AuditLog.action == filters.action_equals.value)
        if filters.resource_type_equals:
            stmt = stmt.where(AuditLog.resource_type == filters.resource_type_equals)
        if filters.text_search:
            needle = filters.text_search
            stmt = stmt.where(
                or_(
                    icontains(StaffIdentity.full_name, needle),
                    icontains(StaffIdentity.email, needle),
                    icontains(cast(AuditLog.details, String), needle),
                )
            )
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [
            AuditEntry(
                id=log.id,
                user_id=log.user_id,
                action=log.action,
                resource_type=log.resource_type,
                resource_id=log.resource_id,
                details=log.details,
                created_at=log.created_at,
                actor_name=actor.full_name if actor else None,
                actor_email=actor.email if actor else None,
            )
            for log, actor in rows
        ]


class InMemoryAuditSink:
    """In-memory sink for tests and local demos.

    ``role_store`` resolves actor names for queries when given.
    """

    def __init__(self, role_store=None):
        self.role_store = role_store
        self.entries: list[AuditEntry] = []

    async def append(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    async def _resolve(self, entry: AuditEntry) -> AuditEntry:
        if self.role_store is None or entry.user_id is None:
            return entry
        identity = await self.role_store.get_identity(entry.user_id)
        if identity is None:
            return entry
        return replace(entry, actor_name=identity.full_name, actor_email=identity.email)

    async def query(self, filters: AuditFilters, limit: int) -> list[AuditEntry]:
        ordered = [
            entry
            for _, entry in sorted(
                enumerate(self.entries),
                key=lambda pair: (pair[1].created_at, pair[0]),
                reverse=True,
            )
        ]
        needle = filters.text_search.lower() if filters.text_search else None
        results: list[AuditEntry] = []
        for entry in ordered:
            if filters.action_equals and entry.action != filters.action_equals:
                continue
            if filters.resource_type_equals and entry.resource_type != filters.resource_type_equals:
                continue
            resolved = await self._resolve(entry)
            if needle:
                haystack = " ".join(
                    [
                        resolved.actor_name or "",
                        resolved.actor_email or "",
                        resolved.details_text(),
                    ]
                ).lower()
                if needle not in haystack:
                    continue
            results.append(resolved)
            if len(results) >= limit:
                break
        return results

    def clear(self) -> None:
        self.entries.clear()


class AuditRecorder:
    """Sole writer of the audit trail."""

    def __init__(
        self,
        sink: AuditSink,
        max_queue_size: int = 1000,
        policy: PolicyEngine | None = None,
        default_limit: int = 500,
        max_limit: int = 1000,
    ):
        self.sink = sink
        self.policy = policy or PolicyEngine()
        self.default_limit = default_limit
        self.max_limit = max_limit
        self._queue: asyncio.Queue[AuditEntry] = asyncio.Queue(maxsize=max_queue_size)
        self._worker: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="audit-writer")
        logger.info("Audit writer started")

    async def stop(self) -> None:
        """Write everything still queued, then stop the worker."""
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
            logger.info("Audit writer stopped")

    async def flush(self) -> None:
        """Wait until every queued entry has been handed to the sink."""
        if self.running:
            await self._queue.join()
            return
        while not self._queue.empty():
            entry = self._queue.get_nowait()
            try:
                await self._write(entry)
            finally:
                self._queue.task_done()

    def record(
        self,
        actor: Optional[uuid.UUID],
        action: AuditAction | str,
        resource_type: ResourceType | str,
        resource_id: Optional[uuid.UUID] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Queue an audit entry. Never raises."""
        try:
            entry = AuditEntry(
                id=uuid.uuid4(),
                user_id=actor,
                action=AuditAction(action).value,
                resource_type=str(resource_type),
                resource_id=resource_id,
                details=_stringify_details(details),
                created_at=utcnow(),
            )
        except Exception:
            logger.exception("Discarding malformed audit entry %s %s", action, resource_type)
            return
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            logger.warning(
                "Audit queue full; dropped %s %s entry for resource %s",
                entry.action,
                entry.resource_type,
                entry.resource_id,
            )

    def log_audit_event(
        self,
        principal: Principal,
        action: AuditAction | str,
        resource_type: ResourceType | str,
        resource_id: Optional[uuid.UUID] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Record an action performed by the current principal."""
        self.record(principal.staff_id, action, resource_type, resource_id, details)

    async def query(
        self,
        principal: Principal,
        filters: AuditFilters | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Newest-first audit entries visible to an admin."""
        self.policy.authorize(principal, AuditAction.view, ResourceType.audit_log)
        if limit is None:
            limit = self.default_limit
        if limit < 1:
            raise ValidationFailed("limit", "must be at least 1")
        return await self.sink.query(filters or AuditFilters(), min(limit, self.max_limit))

    async def _write(self, entry: AuditEntry) -> None:
        try:
            await self.sink.append(entry)
        except Exception:
            logger.exception(
                "Audit write failed for %s %s (resource %s)",
                entry.action,
                entry.resource_type,
                entry.resource_id,
            )

    async def _run(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._write(entry)
            finally:
                self._queue.task_done()

