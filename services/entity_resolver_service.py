"""
Entity resolver service.

Batch-resolves usernames, office names and serial numbers for a whole
upload in one pass, then a second pass for the office locations of the
users found in the first.
"""

import re
import time
from typing import Callable, Iterable, Optional

import structlog

from config import settings
from exceptions import DatabaseError, ResolutionError
from models.import_mapping import TransformationResult
from models.import_resolution import (
    ResolutionRequest,
    ResolutionResult,
    SerialConflict,
)
from services.directory_service import DirectoryService, get_directory_service
from services.inventory_service import InventoryService, get_inventory_service

logger = structlog.get_logger(__name__)

DIRECTORY_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def normalize_username(value: Optional[str]) -> Optional[str]:
    """
    Lookup key for a raw username cell.

    "BGC\\jsmith" -> "jsmith", "  Jane Doe " -> "Jane Doe", "" -> None.
    """
    if value is None:
        return None
    name = str(value).strip()
    if "\\" in name:
        name = name.rsplit("\\", 1)[-1].strip()
    return name or None


def is_directory_id(value: Optional[str]) -> bool:
    """True for values that are already directory object ids (GUIDs)."""
    return bool(value) and DIRECTORY_ID_PATTERN.match(value) is not None


def build_request(results: Iterable[TransformationResult]) -> ResolutionRequest:
    """Collect the identifiers a batch of transformed rows needs resolved."""
    request = ResolutionRequest()
    for result in results:
        direct = result.direct_fields
        username = normalize_username(direct.get("assigned_to"))
        if username and not is_directory_id(username):
            request.usernames.add(username)
        location = str(direct.get("location") or "").strip()
        if location:
            request.location_names.add(location)
        serial = str(direct.get("serial_number") or "").strip()
        if serial:
            request.serial_numbers.add(serial)
    return request


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before retry `attempt` (0-based): base doubled per attempt, capped."""
    return min(base * (2 ** attempt), cap)


class EntityResolverService:
    """
    Resolver over the directory and inventory collaborators.

    `sleep` is injectable so retry timing can be tested without waiting.
    """

    def __init__(
        self,
        directory: Optional[DirectoryService] = None,
        inventory: Optional[InventoryService] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_cap: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.directory = directory or get_directory_service()
        self.inventory = inventory or get_inventory_service()
        self.max_retries = settings.resolver_max_retries if max_retries is None else max_retries
        self.backoff_base = settings.resolver_backoff_base_seconds if backoff_base is None else backoff_base
        self.backoff_cap = settings.resolver_backoff_cap_seconds if backoff_cap is None else backoff_cap
        self.sleep = sleep

    # ===================
    # SINGLE BATCH
    # ===================

    def resolve_entities(
        self,
        usernames: Iterable[str],
        location_names: Iterable[str],
        serial_numbers: Iterable[str],
    ) -> ResolutionResult:
        """
        Resolve one batch: one user lookup, one location lookup and one
        serial lookup.

        Usernames are normalized before lookup; blank entries and values
        that are already directory ids are dropped.
        The result is keyed by the normalized name.

        Raises:
            ResolutionError: If any collaborator call fails
        """
        names = list(dict.fromkeys(
            n for n in (normalize_username(u) for u in usernames) if n and not is_directory_id(n)
        ))
        locations = list(dict.fromkeys(
            loc.strip() for loc in location_names if loc and loc.strip()
        ))
        serials = list(dict.fromkeys(
            s.strip() for s in serial_numbers if s and s.strip()
        ))

        logger.info(
            "resolving_entities",
            usernames=len(names),
            locations=len(locations),
            serial_numbers=len(serials)
        )

        user_map = self.directory.lookup_users(names) if names else {}
        location_map = self.directory.lookup_locations(locations) if locations else {}

        try:
            existing = self.inventory.find_by_serials(serials) if serials else []
        except DatabaseError as e:
            raise ResolutionError(f"Serial conflict lookup failed: {e.message}")

        conflicts = {
            asset["serial_number"]: SerialConflict(
                existing_id=str(asset["id"]),
                existing_tag=asset.get("asset_tag"),
                serial_number=asset["serial_number"],
            )
            for asset in existing
            if asset.get("serial_number") and asset.get("id") is not None
        }

        result = ResolutionResult(
            user_map={name: user_map.get(name) for name in names},
            location_map={loc: location_map.get(loc) for loc in locations},
            conflicts=conflicts,
        )

        logger.info(
            "entities_resolved",
            users=result.resolved_user_count,
            locations=result.resolved_location_count,
            conflicts=len(conflicts)
        )
        return result

    def _with_retry(self, operation: str, call: Callable[[], object]):
        """Run `call`, retrying ResolutionError with capped exponential backoff."""
        attempt = 0
        while True:
            try:
                return call()
            except ResolutionError as e:
                if attempt >= self.max_retries:
                    logger.error(
                        "resolver_retries_exhausted",
                        operation=operation,
                        attempts=attempt + 1,
                        error=e.message
                    )
                    raise
                delay = backoff_delay(attempt, self.backoff_base, self.backoff_cap)
                logger.warning(
                    "resolver_retry",
                    operation=operation,
                    attempt=attempt + 1,
                    delay_seconds=delay,
                    error=e.message
                )
                self.sleep(delay)
                attempt += 1

    # ===================
    # CASCADE
    # ===================

    def resolve_with_cascade(
        self,
        usernames: Iterable[str],
        location_names: Iterable[str],
        serial_numbers: Iterable[str],
    ) -> ResolutionResult:
        """
        Two-pass resolution.

        Pass 1 resolves users, explicit locations and serials. Pass 2
        resolves the office locations of users found in pass 1 and is
        merged over the pass-1 location map.

        Never raises: a failed pass 1 yields empty maps, a failed pass 2
        keeps the pass-1 maps.
        """
        usernames = list(usernames)
        location_names = list(location_names)
        serial_numbers = list(serial_numbers)

        try:
            first = self._with_retry(
                "pass_1",
                lambda: self.resolve_entities(usernames, location_names, serial_numbers)
            )
        except ResolutionError:
            logger.error("resolver_pass_1_failed", degraded=True)
            return ResolutionResult()

        offices = list(dict.fromkeys(
            user.office_location.strip()
            for user in first.user_map.values()
            if user is not None and user.office_location and user.office_location.strip()
        ))
        if not offices:
            return first

        try:
            second = self._with_retry(
                "pass_2",
                lambda: self.resolve_entities([], offices, [])
            )
        except ResolutionError:
            logger.error("resolver_pass_2_failed", degraded=True)
            return first

        logger.info("resolver_cascade_complete", office_locations=len(offices))

        return ResolutionResult(
            user_map=first.user_map,
            location_map={**first.location_map, **second.location_map},
            conflicts=first.conflicts,
        )


# Singleton instance for convenience
_entity_resolver_service: Optional[EntityResolverService] = None


def get_entity_resolver_service() -> EntityResolverService:
    """Get or create EntityResolverService instance."""
    global _entity_resolver_service
    if _entity_resolver_service is None:
        _entity_resolver_service = EntityResolverService()
    return _entity_resolver_service
