"""Job processing API."""
from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from ..domain.errors import GenerationParseError, ProviderError, WorkflowValidationError
from ..domain.pipeline import AutomationPipeline
from ..domain.types import AutomationJob
from ..persistence.sinks import SqlJobStore
from .deps import get_pipeline, get_store

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobSummaryResponse(BaseModel):
    job_id: str = Field(alias="jobId")
    automation_id: str = Field(alias="automationId")
    status: str
    name: str | None
    workflow_name: str = Field(alias="workflowName")
    node_count: int = Field(alias="nodeCount")

    model_config = ConfigDict(populate_by_name=True)


class JobStatusResponse(BaseModel):
    job_id: str = Field(alias="jobId")
    status: str
    progress: int
    error_message: str | None = Field(default=None, alias="errorMessage")
    organization_id: str | None = Field(default=None, alias="organizationId")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class AutomationResponse(BaseModel):
    id: str
    job_id: str = Field(alias="jobId")
    name: str
    description: str | None
    platform: str
    workflow: dict[str, Any]
    instructions: str | None
    metadata: dict[str, Any]

    model_config = ConfigDict(populate_by_name=True)


def _job_not_found(job_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")


@router.post("", response_model=JobSummaryResponse, status_code=status.HTTP_201_CREATED)
async def process_job(
    job: AutomationJob,
    pipeline: AutomationPipeline = Depends(get_pipeline),
    store: SqlJobStore = Depends(get_store),
):
    await store.register_job(job)
    try:
        result = await pipeline.process_job(job)
    except WorkflowValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "WorkflowValidationError", "message": str(exc), "errors": exc.errors},
        ) from exc
    except GenerationParseError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": "GenerationParseError", "message": str(exc)},
        ) from exc
    except ProviderError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "ProviderError", "message": str(exc), "attempts": list(exc.attempts)},
        ) from exc
    return JobSummaryResponse(
        jobId=result.job_id,
        automationId=result.automation_id,
        status="completed",
        name=result.automation["name"],
        workflowName=result.plan.workflow_name,
        nodeCount=result.automation["metadata"]["nodeCount"],
    )


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: str, store: SqlJobStore = Depends(get_store)):
    record = await store.get_job(job_id)
    if record is None:
        raise _job_not_found(job_id)
    return JobStatusResponse(
        jobId=record.id,
        status=record.status.value,
        progress=record.progress,
        errorMessage=record.error_message,
        organizationId=record.organization_id,
        updatedAt=record.updated_at.isoformat() if record.updated_at else None,
    )


@router.get("/{job_id}/automation", response_model=AutomationResponse)
async def get_automation(job_id: str, store: SqlJobStore = Depends(get_store)):
    automation = await store.get_automation(job_id)
    if automation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No automation generated for job {job_id}")
    return AutomationResponse(
        id=automation.id,
        jobId=automation.job_id,
        name=automation.name,
        description=automation.description,
        platform=automation.platform,
        workflow=automation.workflow_json,
        instructions=automation.instructions,
        metadata=automation.details,
    )


__all__ = ["router"]
