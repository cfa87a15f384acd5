"""Queue batch handling with at-least-once semantics."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

import structlog
from pydantic import ValidationError

from .pipeline import AutomationPipeline
from .types import AutomationJob

logger = structlog.get_logger(__name__)


class QueueMessage(Protocol):
    body: Any

    def ack(self) -> None: ...

    def retry(self) -> None: ...


@dataclass
class BatchOutcome:
    acked: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    dropped: int = 0


def parse_job_message(body: Any) -> AutomationJob:
    """Decode a queue body (mapping, JSON text or bytes) into a job."""
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8")
    if isinstance(body, str):
        body = json.loads(body)
    return AutomationJob.model_validate(body)


class QueueConsumer:
    def __init__(self, pipeline: AutomationPipeline) -> None:
        self._pipeline = pipeline

    async def handle_batch(self, messages: Iterable[QueueMessage]) -> BatchOutcome:
        outcome = BatchOutcome()
        for message in messages:
            try:
                job = parse_job_message(message.body)
            except (ValueError, ValidationError) as exc:
                # malformed bodies can never succeed; acknowledge to stop redelivery
                logger.error("consumer.malformed_message", error=str(exc))
                message.ack()
                outcome.dropped += 1
                continue
            try:
                await self._pipeline.process_job(job)
            except Exception as exc:
                logger.warning("consumer.retry", job_id=job.id, error=str(exc))
                message.retry()
                outcome.retried.append(job.id)
                continue
            message.ack()
            outcome.acked.append(job.id)
        logger.info(
            "consumer.batch_handled",
            acked=len(outcome.acked),
            retried=len(outcome.retried),
            dropped=outcome.dropped,
        )
        return outcome


__all__ = ["BatchOutcome", "QueueConsumer", "QueueMessage", "parse_job_message"]
