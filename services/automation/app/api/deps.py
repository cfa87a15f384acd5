"""FastAPI dependency helpers."""
from __future__ import annotations

from fastapi import Request

from ..domain.cost_monitor import CostMonitor
from ..domain.pipeline import AutomationPipeline
from ..persistence.sinks import SqlJobStore


def get_pipeline(request: Request) -> AutomationPipeline:
    return request.app.state.pipeline


def get_store(request: Request) -> SqlJobStore:
    return request.app.state.store


def get_cost_monitor(request: Request) -> CostMonitor:
    return request.app.state.cost_monitor


__all__ = ["get_cost_monitor", "get_pipeline", "get_store"]
