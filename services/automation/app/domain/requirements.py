"""Keyword classifier for business requirements."""
from __future__ import annotations

import re
from typing import Protocol

from .types import AutomationJob, BusinessRequirements, ComplexityTier

EMAIL_KEYWORDS = ("email", "inbox", "mail")
SHEET_KEYWORDS = ("sheet", "spreadsheet")
RECORD_STORE_KEYWORDS = ("airtable", "database", "crm")
AI_KEYWORDS = ("analyz", "analys", "classif", "categoriz", "extract", "summariz")
NOTIFY_KEYWORDS = ("notify", "alert", "slack")
CONDITIONAL_PATTERN = re.compile(r"\b(if|priority|priorit\w+|route|routing|conditional)\b", re.IGNORECASE)


class RequirementsClassifier(Protocol):
    def classify(self, job: AutomationJob) -> BusinessRequirements: ...


def _mentions(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def assess_complexity(job: AutomationJob) -> ComplexityTier:
    description = job.description.lower()
    score = 0
    if _mentions(description, EMAIL_KEYWORDS):
        score += 2
    if _mentions(description, SHEET_KEYWORDS + RECORD_STORE_KEYWORDS):
        score += 2
    if re.search(r"\bai\b", description) or _mentions(description, AI_KEYWORDS):
        score += 3
    if len(job.automation_opportunities) > 3:
        score += 2
    if "conditional" in description or "route" in description:
        score += 2
    return ComplexityTier.from_score(score)


class KeywordRequirementsClassifier:
    """Flags capabilities from the process description and opportunity list."""

    def classify(self, job: AutomationJob) -> BusinessRequirements:
        description = job.description.lower()
        solutions = " ".join(op.automation_solution.lower() for op in job.automation_opportunities)
        context = job.process_data.business_context
        return BusinessRequirements(
            has_email_processing=_mentions(description, EMAIL_KEYWORDS) or "email" in solutions,
            has_sheets_integration=_mentions(description, SHEET_KEYWORDS) or "sheet" in solutions,
            has_record_store_integration=_mentions(description, RECORD_STORE_KEYWORDS),
            needs_ai_processing=_mentions(description, AI_KEYWORDS),
            needs_notifications=_mentions(description, NOTIFY_KEYWORDS),
            has_conditional_logic=CONDITIONAL_PATTERN.search(description) is not None,
            complexity=assess_complexity(job),
            industry=context.industry or "general",
            volume=context.volume or "medium",
        )


__all__ = ["KeywordRequirementsClassifier", "RequirementsClassifier", "assess_complexity"]
