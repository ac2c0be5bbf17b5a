"""
Enums for the brand orchestrator.

This module contains the enumerations shared by the bucket fetcher, the
scoring engine, the selection step and the intent router.
"""

from enum import Enum


class ClientStatus(str, Enum):
    """CRM client status of a brand."""
    ACTIVE = "Active"
    CONTRACT = "Contract"
    INACTIVE = "Inactive"
    PENDING = "Pending"
    UNSPECIFIED = ""

    @classmethod
    def parse(cls, value) -> "ClientStatus":
        text = str(value or "").strip().lower()
        for status in cls:
            if status.value.lower() == text and status is not cls.UNSPECIFIED:
                return status
        return cls.UNSPECIFIED

    @property
    def is_current_client(self) -> bool:
        return self in (ClientStatus.ACTIVE, ClientStatus.CONTRACT)


class Bucket(str, Enum):
    """Source that first surfaced a candidate."""
    CATEGORY_MATCH = "CategoryMatch"
    WIN_BACK = "WinBack"
    ACTIVE_CLIENT = "ActiveClient"
    DISCOVERY = "Discovery"
    WILDCARD = "Wildcard"
    USER_SUGGESTED = "UserSuggested"
    COMMS_FOUND = "CommsFound"


# Merge and tie-break order for the CRM buckets
BUCKET_PRIORITY = [
    Bucket.CATEGORY_MATCH,
    Bucket.WIN_BACK,
    Bucket.ACTIVE_CLIENT,
    Bucket.DISCOVERY,
    Bucket.WILDCARD,
]


def bucket_rank(bucket: "Bucket") -> int:
    """Position in BUCKET_PRIORITY; sources outside the CRM buckets sort last."""
    try:
        return BUCKET_PRIORITY.index(bucket)
    except ValueError:
        return len(BUCKET_PRIORITY)


class Tag(str, Enum):
    """Badges shown next to a candidate."""
    CATEGORY_MATCH = "CategoryMatch"
    WIN_BACK = "WinBack"
    ACTIVE_CLIENT = "ActiveClient"
    DISCOVERY = "Discovery"
    WILDCARD = "Wildcard"
    USER_SUGGESTED = "UserSuggested"
    COMMS_FOUND = "CommsFound"
    PROVEN_PARTNER = "ProvenPartner"  # 10+ partnerships
    HIGH_ACTIVITY = "HighActivity"  # 5+ active deals
    RETAINER = "Retainer"
    COMMS_SIGNAL = "CommsSignal"  # informational, never scored

    @classmethod
    def for_bucket(cls, bucket: Bucket) -> "Tag":
        return cls(bucket.value)


TAG_LABELS = {
    Tag.CATEGORY_MATCH: "Category Match",
    Tag.WIN_BACK: "Win-Back",
    Tag.ACTIVE_CLIENT: "Active Client",
    Tag.DISCOVERY: "Discovery",
    Tag.WILDCARD: "Wildcard",
    Tag.USER_SUGGESTED: "Requested",
    Tag.COMMS_FOUND: "From Comms",
    Tag.PROVEN_PARTNER: "10+ Partnerships",
    Tag.HIGH_ACTIVITY: "5+ Active Deals",
    Tag.RETAINER: "Retainer Client",
    Tag.COMMS_SIGNAL: "Mentioned in Comms",
}


class Operation(str, Enum):
    """Operations the intent router can dispatch to."""
    FIND_BRANDS = "FindBrands"
    QUICK_MATCH = "QuickMatch"
    GET_BRAND_ACTIVITY = "GetBrandActivity"
    CREATE_PITCHES_FOR_BRANDS = "CreatePitchesForBrands"
    ANSWER_GENERAL = "AnswerGeneral"


class SessionState(str, Enum):
    NO_SESSION = "NoSession"
    ACTIVE_SESSION = "ActiveSession"
    SUPERSEDED_SESSION = "SupersededSession"
