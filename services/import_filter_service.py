"""
Filter chain for raw import rows.

Rule sets are registered per (source, category). Rules are ANDed in
order; a missing or blank cell fails the rule. Unknown keys resolve to
the identity filter.
"""

from datetime import datetime
from typing import Optional

import structlog

from models.import_filter import (
    FilterOperator,
    FilterRule,
    ImportFilter,
    FilterStats,
    FilterResult,
)
from utils.date_utils import days_since

logger = structlog.get_logger(__name__)


ENDPOINT_DEVICE_ROLES = [
    "WINDOWS_DESKTOP",
    "WINDOWS_LAPTOP",
    "MAC_DESKTOP",
    "MAC_LAPTOP",
    "LINUX_DESKTOP",
    "LINUX_LAPTOP",
    "TABLET",
    "MOBILE",
]

SERVER_ROLES = [
    "WINDOWS_SERVER",
    "LINUX_SERVER",
    "HYPER-V_SERVER",
    "VMWARE_SERVER",
    "SERVER",
    "NETWORK_DEVICE",
    "PRINTER",
]

NO_FILTER_NAME = "No Filter"

IMPORT_FILTERS: dict[tuple[str, str], ImportFilter] = {
    ("ninjaone", "endpoints"): ImportFilter(
        name="NinjaOne Endpoint Devices",
        description="Filter for endpoint devices only (desktops, laptops, tablets, phones)",
        rules=[
            FilterRule(
                field="Role",
                operator=FilterOperator.INCLUDES,
                values=ENDPOINT_DEVICE_ROLES,
                description="Include only endpoint device roles",
            )
        ],
    ),
    ("ninjaone", "servers"): ImportFilter(
        name="NinjaOne Servers",
        description="Filter for servers and infrastructure devices",
        rules=[
            FilterRule(
                field="Role",
                operator=FilterOperator.INCLUDES,
                values=SERVER_ROLES,
                description="Include only server and infrastructure roles",
            )
        ],
    ),
}


def get_filter(source_id: str, category: Optional[str]) -> Optional[ImportFilter]:
    """Registered rule set for the exact key, or None."""
    return IMPORT_FILTERS.get((source_id, category or ""))


def last_online_rule(max_days: int) -> FilterRule:
    """Rule keeping devices seen online within `max_days` days."""
    return FilterRule(
        field="Last Online",
        operator=FilterOperator.DAYS_SINCE,
        values=[],
        max_days=max_days,
        description=f"Device was online within the last {max_days} days",
    )


def rule_matches(rule: FilterRule, row: dict[str, str], now: Optional[datetime] = None) -> bool:
    value = row.get(rule.field)
    if value is None or not str(value).strip():
        return False
    value = str(value)

    if rule.operator in (FilterOperator.EQUALS, FilterOperator.INCLUDES):
        return value in rule.values
    if rule.operator == FilterOperator.EXCLUDES:
        return value not in rule.values
    if rule.operator == FilterOperator.STARTS_WITH:
        return any(value.startswith(v) for v in rule.values)
    if rule.operator == FilterOperator.ENDS_WITH:
        return any(value.endswith(v) for v in rule.values)
    if rule.operator == FilterOperator.DAYS_SINCE:
        # Unparsable timestamps count as infinitely old
        return rule.max_days is not None and days_since(value, now) <= rule.max_days
    return False


def apply_filter(
    rows: list[dict[str, str]],
    source_id: str,
    category: Optional[str],
    extra_rules: Optional[list[FilterRule]] = None,
    now: Optional[datetime] = None,
) -> FilterResult:
    """
    Partition rows into included and excluded.

    Every input row lands in exactly one side, in input order.

    Args:
        rows: Raw rows keyed by source column
        source_id: Import source id
        category: Upload category ("endpoints", "servers")
        extra_rules: Caller rules ANDed after the registered ones
        now: Clock for daysSince rules

    Returns:
        FilterResult with stats
    """
    registered = get_filter(source_id, category)
    rules = list(registered.rules) if registered else []
    rules.extend(extra_rules or [])
    filter_name = registered.name if registered else NO_FILTER_NAME

    included: list[dict[str, str]] = []
    excluded: list[dict[str, str]] = []

    for row in rows:
        if all(rule_matches(rule, row, now) for rule in rules):
            included.append(row)
        else:
            excluded.append(row)

    logger.info(
        "import_filter_applied",
        source_id=source_id,
        category=category,
        filter_name=filter_name,
        rules=len(rules),
        total=len(rows),
        included=len(included),
        excluded=len(excluded),
    )

    return FilterResult(
        included=included,
        excluded=excluded,
        stats=FilterStats(
            total=len(rows),
            included=len(included),
            excluded=len(excluded),
            filter_name=filter_name,
        ),
    )


def get_filter_description(
    source_id: str,
    category: Optional[str],
    last_online_max_days: Optional[int] = None,
) -> str:
    registered = get_filter(source_id, category)
    description = registered.description if registered else "No filtering applied"

    if last_online_max_days:
        online = f"devices online within {last_online_max_days} days"
        description = f"{description} + {online}" if registered else f"Filter for {online}"

    return description
