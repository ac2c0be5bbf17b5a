"""
Field-name normalization for CRM records.

HubSpot properties for the same concept have drifted over time (``studio``
vs ``distributor``, ``main_cast`` vs ``stars`` ...). Each canonical field has an
ordered alias list; the first present, non-empty alias wins. Resolution happens
once here so the rest of the pipeline only sees canonical records.
"""

import re
from dataclasses import fields
from typing import Any, Dict, List, Optional

from shared.util import to_int

from .enums import ClientStatus
from .models import CandidateBrand, CandidateId, PartnershipRecord

PARTNERSHIP_ALIASES = {
    "title": ["title", "partnership_name", "production_name", "name"],
    "distributor": ["distributor", "studio", "distribution_partner"],
    "release_date": [
        "release_date",
        "releaseDate",
        "release__est__date",
        "release_estimated",
        "release",
    ],
    "production_start_date": [
        "start_date",
        "production_start_date",
        "productionStartDate",
        "production_start",
        "prod_start",
    ],
    "production_type": ["production_type", "productionType", "prod_type"],
    "location": [
        "storyline_location__city_",
        "plot_location",
        "location",
        "city",
        "shooting_location",
    ],
    "cast": ["main_cast", "cast", "stars", "talent"],
    "genre_or_vibe": ["vibe", "genre_production", "genre", "genres"],
    "synopsis": ["synopsis", "logline", "description"],
    "time_period": ["time_period", "period"],
    "audience_segment": ["audience_segment", "audience", "target_audience"],
}

BRAND_ALIASES = {
    "name": ["brand_name", "name"],
    "category": ["main_category", "category"],
    "subcategories": ["product_sub_category__multi_", "subcategories", "sub_category"],
    "client_status": ["client_status", "status"],
    "client_type": ["client_type"],
    "partnership_count": ["partnership_count", "partnershipCount"],
    "deals_count": ["deals_count", "dealsCount"],
    "last_activity": ["hs_lastmodifieddate", "lastmodifieddate", "last_activity"],
    "secondary_owner": ["secondary_owner", "secondaryOwner"],
    "specialty_lead": ["specialty_lead", "specialtyLead"],
}


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return True


def resolve_field(raw: Dict[str, Any], aliases: List[str]) -> Optional[Any]:
    for alias in aliases:
        value = raw.get(alias)
        if _present(value):
            return value.strip() if isinstance(value, str) else value
    return None


def split_list(value: Any) -> List[str]:
    """Split a CRM multi-value field (list, or ';' ',' newline separated string)."""
    if not _present(value):
        return []
    if isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        items = re.split(r"[;,\n]", str(value))
    return [item.strip() for item in items if item and item.strip()]


def _flatten(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # HubSpot nests fields under "properties"
    if not raw:
        return {}
    flat = dict(raw.get("properties") or {})
    for key, value in raw.items():
        if key != "properties":
            flat.setdefault(key, value)
    return flat


def normalize(raw: Optional[Dict[str, Any]]) -> PartnershipRecord:
    """Map a raw CRM partnership record to a PartnershipRecord. Pure."""
    flat = _flatten(raw)
    values = {}
    for canonical, aliases in PARTNERSHIP_ALIASES.items():
        values[canonical] = resolve_field(flat, aliases)
    values["cast"] = split_list(values["cast"])
    crm_id = flat.get("hs_object_id") or flat.get("id")
    values["crm_id"] = str(crm_id) if _present(crm_id) else None
    return PartnershipRecord(**values)


def normalize_brand(raw: Dict[str, Any], index: int = 0) -> CandidateBrand:
    """Map a raw CRM brand record to a CandidateBrand with a verified id when present."""
    flat = _flatten(raw)
    name = resolve_field(flat, BRAND_ALIASES["name"]) or "Unknown"
    crm_id = raw.get("id") if raw else None
    candidate_id = (
        CandidateId.from_crm(crm_id)
        if _present(crm_id)
        else CandidateId.synthetic(name, index, prefix="crm")
    )
    return CandidateBrand(
        id=candidate_id,
        name=name,
        category=resolve_field(flat, BRAND_ALIASES["category"]) or "General",
        subcategories=split_list(resolve_field(flat, BRAND_ALIASES["subcategories"])),
        client_status=ClientStatus.parse(resolve_field(flat, BRAND_ALIASES["client_status"])),
        client_type=resolve_field(flat, BRAND_ALIASES["client_type"]) or "",
        partnership_count=to_int(resolve_field(flat, BRAND_ALIASES["partnership_count"])),
        deals_count=to_int(resolve_field(flat, BRAND_ALIASES["deals_count"])),
        last_activity=resolve_field(flat, BRAND_ALIASES["last_activity"]),
        secondary_owner=resolve_field(flat, BRAND_ALIASES["secondary_owner"]),
        specialty_lead=resolve_field(flat, BRAND_ALIASES["specialty_lead"]),
    )


def merge_partnership(
    carried: Optional[PartnershipRecord] = None,
    crm: Optional[PartnershipRecord] = None,
    extracted: Optional[PartnershipRecord] = None,
) -> PartnershipRecord:
    """
    Merge field by field with precedence CRM > carried > extracted.

    Extracted values only fill fields that are absent in both other sources.
    """
    merged = {}
    for f in fields(PartnershipRecord):
        value = None
        for source in (crm, carried, extracted):
            if source is not None and _present(getattr(source, f.name)):
                value = getattr(source, f.name)
                break
        merged[f.name] = value
    merged["cast"] = list(merged["cast"] or [])
    return PartnershipRecord(**merged)
