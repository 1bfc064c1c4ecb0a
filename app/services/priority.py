# app/services/priority.py
"""Keyword heuristic that assigns the initial priority of a new report."""
from typing import Optional

from app.models.issue import IssueCategory, IssuePriority

HIGH_PRIORITY_CATEGORIES = frozenset({IssueCategory.electricity.value, IssueCategory.public_safety.value})

# substring matches, so "electr" covers electric / electricity / electrocution
HIGH_PRIORITY_KEYWORDS = (
    "danger", "accident", "exposed", "wire", "fire", "collapse", "flood",
    "emergency", "unsafe", "critical", "life", "death", "electr", "voltage",
)
MEDIUM_PRIORITY_KEYWORDS = (
    "broken", "overflow", "stray", "dark", "stench", "health", "hazard",
)


def classify(category: IssueCategory | str, description: Optional[str]) -> IssuePriority:
    category_value = category.value if isinstance(category, IssueCategory) else str(category)
    text = f"{category_value} {description or ''}".lower()

    if category_value in HIGH_PRIORITY_CATEGORIES or any(k in text for k in HIGH_PRIORITY_KEYWORDS):
        return IssuePriority.high
    if any(k in text for k in MEDIUM_PRIORITY_KEYWORDS):
        return IssuePriority.medium
    return IssuePriority.low
