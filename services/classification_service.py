"""
Workload category detection for imported assets.

Rules live in the Supabase `classification_rules` table joined to their
category. The first active rule (by priority) whose field matches wins.
"""

import re
from typing import Any, Optional

import structlog

from config import get_supabase_client
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

NUMERIC_OPERATORS = {
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
}


def get_nested_value(data: Any, path: str) -> Any:
    """
    Read a dotted path ("extended.ram") from nested dicts.

    Returns None as soon as a segment is missing.
    """
    current = data
    for key in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def _to_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def match_rule(value: Any, rule: dict) -> bool:
    """
    Compare one field value against a rule.

    String comparisons are case-insensitive. Numeric operators fail when
    either side is not a number.
    """
    if value is None:
        return False

    operator = rule.get("operator")
    rule_value = rule.get("value")
    text = str(value).lower()
    expected = str(rule_value).lower()

    if operator == "=":
        return text == expected
    if operator == "!=":
        return text != expected
    if operator in NUMERIC_OPERATORS:
        left, right = _to_number(value), _to_number(rule_value)
        if left is None or right is None:
            return False
        return NUMERIC_OPERATORS[operator](left, right)
    if operator == "includes":
        return expected in text
    if operator == "regex":
        try:
            return re.search(str(rule_value), str(value), re.IGNORECASE) is not None
        except re.error as e:
            logger.warning("invalid_rule_regex", pattern=rule_value, error=str(e))
            return False

    logger.warning("unknown_rule_operator", operator=operator)
    return False


def rule_name(rule: dict) -> str:
    return rule.get("description") or f"{rule.get('source_field')} {rule.get('operator')} {rule.get('value')}"


def classify(record: dict, rules: list[dict]) -> Optional[dict]:
    """
    First matching active rule for a record.

    Returns:
        {"category_id", "category_name", "rule_name"} or None
    """
    for rule in rules:
        if not rule.get("is_active", True):
            continue
        if match_rule(get_nested_value(record, rule.get("source_field", "")), rule):
            category = rule.get("category") or {}
            return {
                "category_id": rule.get("category_id"),
                "category_name": category.get("name") or "",
                "rule_name": rule_name(rule),
            }
    return None


class ClassificationService:
    """Loads classification rules once per import run."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "classification_rules"

    def get_active_rules(self) -> list[dict]:
        """
        Active rules ordered by priority, with their category.

        Raises:
            DatabaseError: If the query fails
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*, category:workload_categories(id, name)")
                .eq("is_active", True)
                .order("priority")
                .execute()
            )
        except Exception as e:
            logger.error("get_classification_rules_failed", error=str(e))
            raise DatabaseError("select", str(e))

        rules = result.data or []
        logger.debug("classification_rules_loaded", count=len(rules))
        return rules


# Singleton instance for convenience
_classification_service: Optional[ClassificationService] = None


def get_classification_service() -> ClassificationService:
    """Get or create ClassificationService instance."""
    global _classification_service
    if _classification_service is None:
        _classification_service = ClassificationService()
    return _classification_service
