"""
Directory lookups for usernames and office names.

Users come from the directory REST API (OData-style /users endpoint);
locations come from the Supabase `locations` table.

Every requested name appears in the returned map. Names that were looked
up but not found map to None. Transport failures raise ResolutionError
so the caller can retry the whole batch. So does a response body that
is not JSON. Directory entries without an id are dropped.
"""

from typing import Iterable, Optional

import requests
import structlog

from config import get_supabase_client, settings
from exceptions import ResolutionError
from models.import_resolution import ResolvedUser
from utils.location_matcher import match_locations

logger = structlog.get_logger(__name__)

USER_FIELDS = "id,displayName,userPrincipalName,mail,officeLocation"
FUZZY_TOP = 10


def _quote(value: str) -> str:
    """Escape a literal for an OData filter."""
    return value.replace("'", "''")


def is_display_name(name: str) -> bool:
    """Names containing a space are treated as display names."""
    return " " in name.strip()


class DirectoryService:
    """
    User and location directory.

    The HTTP session and Supabase client are created once per instance.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        corporate_domains: Optional[list[str]] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.directory_api_url).rstrip("/")
        self.token = token if token is not None else settings.directory_api_token
        self.corporate_domains = corporate_domains or settings.corporate_domains
        self.timeout = timeout or settings.directory_timeout_seconds
        self.session = session or requests.Session()
        self._db = None

    @property
    def db(self):
        # Locations only; user lookups never touch Supabase
        if self._db is None:
            self._db = get_supabase_client()
        return self._db

    # ===================
    # HTTP
    # ===================

    def _query_users(self, odata_filter: str, top: Optional[int] = None) -> list[dict]:
        params = {"$filter": odata_filter, "$select": USER_FIELDS}
        if top:
            params["$top"] = str(top)

        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self.session.get(
                f"{self.base_url}/users",
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("directory_request_failed", filter=odata_filter, error=str(e))
            raise ResolutionError(f"Directory request failed: {e}")

        if response.status_code >= 500 or response.status_code == 429:
            logger.error(
                "directory_unavailable",
                filter=odata_filter,
                status_code=response.status_code
            )
            raise ResolutionError(
                f"Directory returned {response.status_code}",
                details={"status_code": response.status_code}
            )

        if response.status_code >= 400:
            # A rejected filter means this strategy found nothing
            logger.warning(
                "directory_query_rejected",
                filter=odata_filter,
                status_code=response.status_code
            )
            return []

        try:
            payload = response.json()
        except ValueError as e:
            logger.error("directory_response_invalid", filter=odata_filter, error=str(e))
            raise ResolutionError(f"Directory returned an unreadable body: {e}")

        if not isinstance(payload, dict):
            raise ResolutionError("Directory returned an unexpected body")

        users = payload.get("value") or []
        valid = [u for u in users if isinstance(u, dict) and u.get("id")]
        if len(valid) != len(users):
            logger.warning(
                "directory_entries_without_id",
                filter=odata_filter,
                dropped=len(users) - len(valid)
            )
        return valid

    def _is_corporate(self, user: dict) -> bool:
        addresses = [
            (user.get("userPrincipalName") or "").lower(),
            (user.get("mail") or "").lower(),
        ]
        return any(
            f"@{domain.lower()}" in address
            for domain in self.corporate_domains
            for address in addresses
        )

    def _prefer_corporate(self, users: list[dict]) -> dict:
        return next((u for u in users if self._is_corporate(u)), users[0])

    @staticmethod
    def _to_resolved(user: dict) -> ResolvedUser:
        return ResolvedUser(
            id=user["id"],
            display_name=user.get("displayName") or "",
            office_location=user.get("officeLocation") or None,
        )

    # ===================
    # USER STRATEGIES
    # ===================

    def find_by_account(self, username: str) -> Optional[ResolvedUser]:
        """
        Account-name lookup.

        Tries, in order: corporate e-mail on each domain, on-premises
        account name, then a prefix match on the principal name.
        """
        uname = _quote(username)

        for domain in self.corporate_domains:
            email = f"{uname}@{domain}"
            users = self._query_users(f"userPrincipalName eq '{email}' or mail eq '{email}'")
            if users:
                logger.debug("user_resolved", name=username, strategy="corporate_email")
                return self._to_resolved(users[0])

        users = self._query_users(f"onPremisesSamAccountName eq '{uname}'")
        if users:
            logger.debug("user_resolved", name=username, strategy="sam_account")
            return self._to_resolved(users[0])

        users = self._query_users(f"startswith(userPrincipalName,'{uname}')", top=FUZZY_TOP)
        if users:
            logger.debug("user_resolved", name=username, strategy="principal_prefix")
            return self._to_resolved(self._prefer_corporate(users))

        return None

    def find_by_display_name(self, name: str) -> Optional[ResolvedUser]:
        """Exact display-name lookup, then a prefix match."""
        quoted = _quote(name)

        users = self._query_users(f"displayName eq '{quoted}'")
        if users:
            logger.debug("user_resolved", name=name, strategy="display_name")
            return self._to_resolved(self._prefer_corporate(users))

        users = self._query_users(f"startswith(displayName,'{quoted}')", top=FUZZY_TOP)
        if users:
            exact = next(
                (u for u in users if (u.get("displayName") or "").lower() == name.lower()),
                None
            )
            logger.debug("user_resolved", name=name, strategy="display_name_prefix")
            return self._to_resolved(exact or self._prefer_corporate(users))

        return None

    def lookup_users(self, names: Iterable[str]) -> dict[str, Optional[ResolvedUser]]:
        """
        Resolve a batch of user names.

        Results are keyed by both the raw name and its trimmed form.

        Raises:
            ResolutionError: If the directory is unreachable
        """
        result: dict[str, Optional[ResolvedUser]] = {}

        for raw in names:
            name = (raw or "").strip()
            if not name:
                continue
            if name in result:
                result[raw] = result[name]
                continue

            if is_display_name(name):
                user = self.find_by_display_name(name)
            else:
                user = self.find_by_account(name)

            if user is None:
                logger.warning("user_not_resolved", name=name)

            result[raw] = user
            result[name] = user

        logger.info(
            "users_looked_up",
            requested=len(result),
            resolved=sum(1 for u in result.values() if u is not None)
        )
        return result

    # ===================
    # LOCATIONS
    # ===================

    def get_active_locations(self) -> list[dict]:
        """
        Active locations (id, name, city, province).

        Raises:
            ResolutionError: If the query fails
        """
        try:
            result = (
                self.db.table("locations")
                .select("id, name, city, province")
                .eq("is_active", True)
                .execute()
            )
        except Exception as e:
            logger.error("get_locations_failed", error=str(e))
            raise ResolutionError(f"Location lookup failed: {e}")

        return result.data or []

    def lookup_locations(self, names: Iterable[str]) -> dict[str, Optional[str]]:
        """Map office names to location ids (None when unmatched)."""
        wanted = [n for n in dict.fromkeys(names) if n and n.strip()]
        if not wanted:
            return {}
        return match_locations(wanted, self.get_active_locations())


# Singleton instance for convenience
_directory_service: Optional[DirectoryService] = None


def get_directory_service() -> DirectoryService:
    """Get or create DirectoryService instance."""
    global _directory_service
    if _directory_service is None:
        _directory_service = DirectoryService()
    return _directory_service
