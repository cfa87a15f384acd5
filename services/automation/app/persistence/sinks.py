"""Sink protocols the pipeline writes to, plus the SQL-backed implementation."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.types import AutomationJob
from .db import session_scope
from .models import AutomationJobRecord, GeneratedAutomation, JobStatus, UsageEvent

logger = structlog.get_logger(__name__)


class ProgressSink(Protocol):
    async def update_progress(
        self, job_id: str, percent: int, status: str, error_message: str | None = None
    ) -> None: ...


class PersistenceSink(Protocol):
    async def save_automation(self, job_id: str, automation: dict[str, Any]) -> str: ...


class UsageSink(Protocol):
    async def log_usage(self, organization_id: str | None, event: dict[str, Any]) -> None: ...


def _check_progress(percent: int, status: str) -> JobStatus:
    if not 0 <= percent <= 100:
        raise ValueError(f"progress must be within [0, 100], got {percent}")
    try:
        return JobStatus(status)
    except ValueError as exc:
        raise ValueError(f"unknown job status: {status}") from exc


class SqlJobStore:
    """Implements the progress, persistence and usage sinks on SQLAlchemy.

    Every write runs in its own committed session scope.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory

    async def register_job(self, job: AutomationJob) -> None:
        async with session_scope(self._session_factory) as session:
            record = await session.get(AutomationJobRecord, job.id)
            payload = job.model_dump(by_alias=True, mode="json")
            if record is None:
                session.add(
                    AutomationJobRecord(
                        id=job.id,
                        organization_id=job.organization_context.organization_id,
                        status=JobStatus.pending,
                        progress=0,
                        payload=payload,
                    )
                )
            else:
                record.payload = payload

    async def update_progress(
        self, job_id: str, percent: int, status: str, error_message: str | None = None
    ) -> None:
        job_status = _check_progress(percent, status)
        async with session_scope(self._session_factory) as session:
            record = await session.get(AutomationJobRecord, job_id)
            if record is None:
                record = AutomationJobRecord(id=job_id, payload={})
                session.add(record)
            record.progress = percent
            record.status = job_status
            record.error_message = error_message
        logger.info("store.progress", job_id=job_id, status=status, progress=percent)

    async def save_automation(self, job_id: str, automation: dict[str, Any]) -> str:
        """Store the job's automation, replacing any earlier one saved for the same job."""
        metadata = dict(automation.get("metadata") or {})
        async with session_scope(self._session_factory) as session:
            record = await session.get(AutomationJobRecord, job_id)
            if record is None:
                record = AutomationJobRecord(id=job_id, payload={})
                session.add(record)
            record.workflow_data = automation["workflow_json"]
            result = await session.execute(select(GeneratedAutomation).where(GeneratedAutomation.job_id == job_id))
            row = result.scalars().first()
            if row is None:
                row = GeneratedAutomation(job_id=job_id)
                session.add(row)
            row.organization_id = metadata.get("organizationId")
            row.name = automation["name"]
            row.description = automation.get("description")
            row.platform = automation.get("platform", "n8n")
            row.workflow_json = automation["workflow_json"]
            row.instructions = automation.get("instructions")
            row.details = metadata
            await session.flush()
            automation_id = row.id
        logger.info("store.automation_saved", job_id=job_id, automation_id=automation_id)
        return automation_id

    async def log_usage(self, organization_id: str | None, event: dict[str, Any]) -> None:
        if not organization_id:
            # personal workspaces are not metered
            return
        details = {key: value for key, value in event.items() if key != "eventType"}
        details.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        async with session_scope(self._session_factory) as session:
            session.add(
                UsageEvent(
                    organization_id=organization_id,
                    event_type=event.get("eventType", "automation_generated"),
                    details=details,
                )
            )

    async def get_job(self, job_id: str) -> AutomationJobRecord | None:
        async with session_scope(self._session_factory) as session:
            return await session.get(AutomationJobRecord, job_id)

    async def get_automation(self, job_id: str) -> GeneratedAutomation | None:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(GeneratedAutomation)
                .where(GeneratedAutomation.job_id == job_id)
                .order_by(GeneratedAutomation.created_at.desc())
                .limit(1)
            )
            return result.scalars().first()

    async def list_usage(self, organization_id: str) -> list[UsageEvent]:
        async with session_scope(self._session_factory) as session:
            result = await session.execute(
                select(UsageEvent).where(UsageEvent.organization_id == organization_id).order_by(UsageEvent.created_at)
            )
            return list(result.scalars().all())


__all__ = ["PersistenceSink", "ProgressSink", "SqlJobStore", "UsageSink"]
