"""Cost reporting API."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..domain.cost_monitor import CostMonitor
from .deps import get_cost_monitor

router = APIRouter(prefix="/costs", tags=["costs"])


@router.get("/summary")
async def cost_summary(cost_monitor: CostMonitor = Depends(get_cost_monitor)):
    return cost_monitor.get_cost_summary()


@router.get("/recommendations")
async def cost_recommendations(cost_monitor: CostMonitor = Depends(get_cost_monitor)):
    return cost_monitor.get_optimization_recommendations()


__all__ = ["router"]
