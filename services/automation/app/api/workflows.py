"""Workflow validation API."""
from __future__ import annotations

import copy
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..domain.repair import auto_repair_workflow
from ..domain.validator import validate_workflow

router = APIRouter(prefix="/workflows", tags=["workflows"])


class ValidateRequest(BaseModel):
    workflow: dict[str, Any]
    repair: bool = Field(default=False, description="Run one repair pass before validating")


@router.post("/validate")
async def validate(request: ValidateRequest):
    workflow = copy.deepcopy(request.workflow)
    if request.repair:
        auto_repair_workflow(workflow)
    result = validate_workflow(workflow).to_dict()
    if request.repair:
        result["workflow"] = workflow
    return result


__all__ = ["router"]
