"""
HubSpot CRM client for brand and partnership (production) records.

Only the v3 object search endpoint is used. Results are returned as raw
``{"id": ..., "properties": {...}}`` records; field-name normalization happens
in ``brand_orc.normalization``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared import config
from shared.exceptions import CollaboratorError, TransientCollaboratorError

logger = logging.getLogger(__name__)

VALID_OPERATORS = {"EQ", "NEQ", "IN", "GT", "GTE", "LT", "LTE", "HAS_PROPERTY"}

BRAND_PROPERTIES = [
    "brand_name",
    "main_category",
    "product_sub_category__multi_",
    "client_status",
    "client_type",
    "partnership_count",
    "deals_count",
    "hs_lastmodifieddate",
    "createdate",
    "secondary_owner",
    "specialty_lead",
]

PARTNERSHIP_PROPERTIES = [
    "partnership_name",
    "distributor",
    "studio",
    "release__est__date",
    "start_date",
    "production_type",
    "storyline_location__city_",
    "main_cast",
    "synopsis",
    "vibe",
    "genre_production",
    "time_period",
    "audience_segment",
]


@dataclass(frozen=True)
class CrmFilter:
    """One search filter. ``values`` is used by IN, ``value`` by every other operator."""

    property: str
    operator: str
    value: Any = None
    values: tuple = field(default_factory=tuple)

    def to_hubspot(self) -> Dict[str, Any]:
        if self.operator not in VALID_OPERATORS:
            raise ValueError(f"Unsupported CRM operator: {self.operator}")
        body = {"propertyName": self.property, "operator": self.operator}
        if self.operator == "IN":
            body["values"] = [str(v) for v in self.values]
        elif self.operator != "HAS_PROPERTY":
            body["value"] = str(self.value)
        return body


@dataclass(frozen=True)
class CrmSort:
    property: str
    descending: bool = True

    def to_hubspot(self) -> Dict[str, str]:
        return {
            "propertyName": self.property,
            "direction": "DESCENDING" if self.descending else "ASCENDING",
        }


class CrmClient:
    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        brands_object: Optional[str] = None,
        partnerships_object: Optional[str] = None,
    ):
        self.access_token = (
            access_token if access_token is not None else config.HUBSPOT_ACCESS_TOKEN
        )
        self.base_url = (base_url or config.HUBSPOT_BASE_URL).rstrip("/")
        self.brands_object = brands_object or config.HUBSPOT_BRANDS_OBJECT
        self.partnerships_object = partnerships_object or config.HUBSPOT_PARTNERSHIPS_OBJECT

    @property
    def available(self) -> bool:
        return bool(self.access_token)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type((aiohttp.ClientError, TransientCollaboratorError)),
        reraise=True,
    )
    async def _search(self, object_type: str, body: Dict[str, Any]) -> List[Dict[str, Any]]:
        url = f"{self.base_url}/crm/v3/objects/{object_type}/search"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.access_token}",
        }
        async with aiohttp.ClientSession() as session:
            async with session.post(url, headers=headers, json=body) as response:
                if response.status == 200:
                    payload = await response.json()
                    return payload.get("results", [])
                text = await response.text()
                if response.status == 429 or response.status >= 500:
                    raise TransientCollaboratorError("crm", text[:200], response.status)
                raise CollaboratorError("crm", text[:200], response.status)

    async def search_brands(
        self,
        filters: List[CrmFilter],
        sorts: Optional[List[CrmSort]] = None,
        limit: int = 10,
        query: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Search brand records. Returns [] when the CRM is not configured."""
        if not self.available:
            logger.info("[CrmClient] No HubSpot token configured, skipping brand search")
            return []

        body: Dict[str, Any] = {
            "filterGroups": [{"filters": [f.to_hubspot() for f in filters]}] if filters else [],
            "sorts": [s.to_hubspot() for s in (sorts or [])],
            "properties": BRAND_PROPERTIES,
            "limit": max(1, min(int(limit), 100)),
        }
        if query:
            body["query"] = query

        results = await self._search(self.brands_object, body)
        logger.info(f"[CrmClient] Brand search returned {len(results)} records")
        return results

    async def find_brand_by_name(self, name: str) -> Optional[Dict[str, Any]]:
        if not name:
            return None
        results = await self.search_brands(
            [CrmFilter("brand_name", "EQ", name)], limit=1
        )
        if not results:
            results = await self.search_brands([], limit=1, query=name)
        return results[0] if results else None

    async def get_partnership_by_title(self, title: str) -> Optional[Dict[str, Any]]:
        """Exact-name match first, then HubSpot free-text search on the title."""
        if not self.available or not title:
            return None

        base = {"properties": PARTNERSHIP_PROPERTIES, "limit": 1}
        exact = dict(
            base,
            filterGroups=[{"filters": [CrmFilter("partnership_name", "EQ", title).to_hubspot()]}],
        )
        results = await self._search(self.partnerships_object, exact)
        if not results:
            results = await self._search(self.partnerships_object, dict(base, query=title))
        if not results:
            logger.info(f"[CrmClient] No partnership found for '{title}'")
            return None
        return results[0]
