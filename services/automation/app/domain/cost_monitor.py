"""Per-call cost accounting and soft budget checks."""
from __future__ import annotations

import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any

import structlog

from ..config import BudgetSettings, get_settings
from .types import BudgetStatus, ContextConfig, CostRecord, LedgerEntry

logger = structlog.get_logger(__name__)

# USD per million tokens
MODEL_RATES: dict[str, dict[str, float]] = {
    "claude-3-7-sonnet": {"input": 15.0, "output": 75.0},
    "claude-3-5-sonnet": {"input": 3.0, "output": 15.0},
    "gpt-4o-mini": {"input": 0.15, "output": 0.6},
    "gpt-4o": {"input": 2.5, "output": 10.0},
    "gpt-4": {"input": 30.0, "output": 60.0},
}
DEFAULT_RATE_KEY = "claude-3-5-sonnet"
EXPENSIVE_RATE_KEY = "claude-3-7-sonnet"

SAVINGS_PCT = {
    "reduce-context": 0.30,
    "prefer-cheaper-model": 0.60,
    "reduce-nodes": 0.20,
}


def _round(value: float) -> float:
    return round(value, 5)


def rate_key_for(model: str) -> str:
    matches = [key for key in MODEL_RATES if key in model]
    if not matches:
        return DEFAULT_RATE_KEY
    return max(matches, key=len)


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> CostRecord:
    key = rate_key_for(model)
    rates = MODEL_RATES[key]
    input_cost = input_tokens / 1_000_000 * rates["input"]
    output_cost = output_tokens / 1_000_000 * rates["output"]
    return CostRecord(
        model=key,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        input_cost=_round(input_cost),
        output_cost=_round(output_cost),
        total_cost=_round(input_cost + output_cost),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


class CostMonitor:
    """Bounded in-memory ledger of provider calls.

    Owned by the pipeline builder and injected into the model router. Appends and
    reads share one lock.
    """

    def __init__(self, settings: BudgetSettings | None = None) -> None:
        self._settings = settings or get_settings().budget
        self._ledger: deque[LedgerEntry] = deque(maxlen=self._settings.ledger_size)
        self._lock = threading.Lock()

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> CostRecord:
        return calculate_cost(model, input_tokens, output_tokens)

    def log_cost(
        self,
        record: CostRecord,
        *,
        tier: str | None = None,
        complexity: str | None = None,
        job_id: str | None = None,
        workflow_type: str | None = None,
        success: bool = True,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            record=record,
            tier=tier,
            complexity=complexity,
            job_id=job_id,
            workflow_type=workflow_type,
            success=success,
        )
        with self._lock:
            self._ledger.append(entry)
        logger.info(
            "cost.logged",
            model=record.model,
            input_tokens=record.input_tokens,
            output_tokens=record.output_tokens,
            total_cost=record.total_cost,
            tier=tier,
            complexity=complexity,
            job_id=job_id,
            success=success,
        )
        return entry

    def entries(self) -> list[LedgerEntry]:
        with self._lock:
            return list(self._ledger)

    def get_cost_summary(self) -> dict[str, Any]:
        entries = self.entries()
        if not entries:
            return {
                "totalCalls": 0,
                "totalCost": 0.0,
                "averageCost": 0.0,
                "modelBreakdown": {},
                "complexityBreakdown": {},
                "timeRange": None,
            }
        total_cost = sum(entry.record.total_cost for entry in entries)
        model_breakdown: dict[str, dict[str, Any]] = {}
        complexity_breakdown: dict[str, dict[str, Any]] = {}
        for entry in entries:
            bucket = model_breakdown.setdefault(entry.record.model, {"calls": 0, "cost": 0.0})
            bucket["calls"] += 1
            bucket["cost"] = _round(bucket["cost"] + entry.record.total_cost)
            bucket = complexity_breakdown.setdefault(entry.complexity or "unknown", {"calls": 0, "cost": 0.0})
            bucket["calls"] += 1
            bucket["cost"] = _round(bucket["cost"] + entry.record.total_cost)
        return {
            "totalCalls": len(entries),
            "totalCost": _round(total_cost),
            "averageCost": _round(total_cost / len(entries)),
            "modelBreakdown": model_breakdown,
            "complexityBreakdown": complexity_breakdown,
            "timeRange": {"start": entries[0].record.timestamp, "end": entries[-1].record.timestamp},
        }

    def daily_total(self, now: datetime | None = None) -> float:
        today = (now or datetime.now(timezone.utc)).date()
        total = 0.0
        for entry in self.entries():
            stamp = datetime.fromisoformat(entry.record.timestamp)
            if stamp.astimezone(timezone.utc).date() == today:
                total += entry.record.total_cost
        return _round(total)

    def check_budget(self, record: CostRecord) -> BudgetStatus:
        daily_budget = self._settings.daily_cost_budget
        single_call_limit = self._settings.single_call_limit
        daily_total = self.daily_total()
        warnings: list[str] = []
        if record.total_cost > single_call_limit:
            warnings.append(f"Single call cost ${record.total_cost:.5f} exceeds limit ${single_call_limit:.2f}")
        if daily_total > daily_budget * 0.8:
            warnings.append(f"Daily usage ${daily_total:.5f} approaching budget ${daily_budget:.2f}")
        if daily_total > daily_budget:
            warnings.append(f"Daily budget ${daily_budget:.2f} exceeded, current ${daily_total:.5f}")
        status = BudgetStatus(
            within_budget=daily_total < daily_budget and record.total_cost < single_call_limit,
            warnings=warnings,
            current_cost=record.total_cost,
            daily_total=daily_total,
            daily_budget=daily_budget,
            single_call_limit=single_call_limit,
        )
        if warnings:
            logger.warning("cost.budget_warning", warnings=warnings, daily_total=daily_total)
        return status

    def get_optimization_recommendations(self, context_config: ContextConfig | None = None) -> dict[str, Any]:
        summary = self.get_cost_summary()
        recommendations: list[dict[str, Any]] = []

        expensive = summary["modelBreakdown"].get(EXPENSIVE_RATE_KEY)
        if expensive:
            average = expensive["cost"] / expensive["calls"]
            if average > 0.50:
                recommendations.append(
                    {
                        "type": "cost-reduction",
                        "message": f"{EXPENSIVE_RATE_KEY} averaging ${average:.3f} per call, consider reducing context size",
                        "action": "reduce-context",
                        "estimatedSavingsPct": int(SAVINGS_PCT["reduce-context"] * 100),
                    }
                )
            simple_on_expensive = [
                entry
                for entry in self.entries()
                if entry.record.model == EXPENSIVE_RATE_KEY and entry.complexity == "simple"
            ]
            if simple_on_expensive:
                recommendations.append(
                    {
                        "type": "model-optimization",
                        "message": f"{len(simple_on_expensive)} simple workflows used {EXPENSIVE_RATE_KEY}",
                        "action": "prefer-cheaper-model",
                        "estimatedSavingsPct": int(SAVINGS_PCT["prefer-cheaper-model"] * 100),
                    }
                )

        if context_config is not None and context_config.node_count > 6 and context_config.complexity == "simple":
            recommendations.append(
                {
                    "type": "context-optimization",
                    "message": "Simple workflow documenting more than 6 nodes, reduce to 4-6",
                    "action": "reduce-nodes",
                    "estimatedSavingsPct": int(SAVINGS_PCT["reduce-nodes"] * 100),
                }
            )

        total_calls = summary["totalCalls"]
        simple_calls = summary["complexityBreakdown"].get("simple", {}).get("calls", 0)
        simple_ratio = simple_calls / total_calls if total_calls else 0.0
        already_suggested = any(rec["action"] == "prefer-cheaper-model" for rec in recommendations)
        if simple_ratio > 0.6 and not already_suggested:
            recommendations.append(
                {
                    "type": "model-optimization",
                    "message": f"{round(simple_ratio * 100)}% simple workflows, consider defaulting to the cheaper model",
                    "action": "prefer-cheaper-model",
                    "estimatedSavingsPct": int(SAVINGS_PCT["prefer-cheaper-model"] * 100),
                }
            )

        return {
            "recommendations": recommendations,
            "potentialSavings": self._potential_savings(summary["totalCost"], recommendations),
        }

    @staticmethod
    def _potential_savings(total_cost: float, recommendations: list[dict[str, Any]]) -> float:
        savings = sum(total_cost * SAVINGS_PCT.get(rec["action"], 0.0) for rec in recommendations)
        return _round(savings)

    def export_cost_data(self) -> dict[str, Any]:
        return {
            "summary": self.get_cost_summary(),
            "recommendations": self.get_optimization_recommendations(),
            "rawData": [entry.to_dict() for entry in self.entries()],
            "exportedAt": datetime.now(timezone.utc).isoformat(),
        }


__all__ = ["CostMonitor", "MODEL_RATES", "calculate_cost", "rate_key_for"]
