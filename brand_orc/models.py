"""
Data Models for the Brand Orchestrator

This module defines the core data structures used throughout the pipeline:
- PartnershipRecord: canonical description of a production
- CandidateId / CandidateBrand: a brand under consideration and its identity
- CommsRecord / CommsResult: meetings and emails found for a production
- SessionContext: the project carried across turns
- PipelineConfig: tunable scoring, quota and timeout parameters

These models have no dependencies on other orchestrator components.
"""

import os
import logging
from dataclasses import dataclass, field, fields, asdict
from typing import Any, Dict, List, Optional

from shared import config as settings
from shared.util import slugify

from .enums import Bucket, ClientStatus, Operation, SessionState, Tag, TAG_LABELS

logger = logging.getLogger(__name__)

NO_EVIDENCE = "No direct evidence in recent communications."


@dataclass
class PartnershipRecord:
    """A production. Only ``title`` is required once the record is resolved."""

    title: Optional[str] = None
    distributor: Optional[str] = None
    release_date: Optional[str] = None
    production_start_date: Optional[str] = None
    production_type: Optional[str] = None
    location: Optional[str] = None
    cast: List[str] = field(default_factory=list)
    genre_or_vibe: Optional[str] = None
    synopsis: Optional[str] = None
    time_period: Optional[str] = None
    audience_segment: Optional[str] = None
    crm_id: Optional[str] = None

    @property
    def lead_cast(self) -> Optional[str]:
        return self.cast[0] if self.cast else None

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def summary(self) -> str:
        """Compact one-block description used inside prompts."""
        parts = [f"Title: {self.title or 'Unknown'}"]
        if self.genre_or_vibe:
            parts.append(f"Genre/Vibe: {self.genre_or_vibe}")
        if self.synopsis:
            parts.append(f"Synopsis: {self.synopsis[:800]}")
        if self.cast:
            parts.append(f"Cast: {', '.join(self.cast[:5])}")
        if self.distributor:
            parts.append(f"Distributor: {self.distributor}")
        if self.location:
            parts.append(f"Location: {self.location}")
        if self.release_date:
            parts.append(f"Release: {self.release_date}")
        return "\n".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PartnershipRecord":
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values["cast"] = list(values.get("cast") or [])
        return cls(**values)


@dataclass(frozen=True)
class CandidateId:
    """
    Identity of a candidate: either a CRM record id (verified) or a synthetic
    id derived from the name and its position in the source list.
    """

    value: str
    verified: bool

    @classmethod
    def from_crm(cls, crm_id: Any) -> "CandidateId":
        return cls(value=str(crm_id), verified=True)

    @classmethod
    def synthetic(cls, name: str, index: int, prefix: str = "wildcard") -> "CandidateId":
        return cls(value=f"{prefix}-{slugify(name)}-{index}", verified=False)

    def __str__(self) -> str:
        return self.value


@dataclass
class EvidenceRef:
    type: str  # meeting | email
    id: str
    title: str
    timestamp: Optional[str] = None
    link: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CandidateBrand:
    id: CandidateId
    name: str
    category: str = "General"
    subcategories: List[str] = field(default_factory=list)
    client_status: ClientStatus = ClientStatus.UNSPECIFIED
    client_type: str = ""
    partnership_count: int = 0
    deals_count: int = 0
    last_activity: Optional[str] = None
    secondary_owner: Optional[str] = None
    specialty_lead: Optional[str] = None

    # Accumulated during the pipeline
    source_bucket: Optional[Bucket] = None
    tags: List[Tag] = field(default_factory=list)
    relevance_score: float = 0.0
    reason: str = ""
    evidence: Optional[EvidenceRef] = None
    pitch: Optional[Dict[str, Any]] = None

    @property
    def primary_tag(self) -> Optional[Tag]:
        return Tag.for_bucket(self.source_bucket) if self.source_bucket else None

    def has_tag(self, tag: Tag) -> bool:
        return tag in self.tags

    def add_tag(self, tag: Tag):
        if tag not in self.tags:
            self.tags.append(tag)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.value,
            "verified": self.id.verified,
            "name": self.name,
            "category": self.category,
            "subcategories": list(self.subcategories),
            "clientStatus": self.client_status.value,
            "clientType": self.client_type,
            "partnershipCount": self.partnership_count,
            "dealsCount": self.deals_count,
            "lastActivity": self.last_activity,
            "secondaryOwner": self.secondary_owner,
            "specialtyLead": self.specialty_lead,
            "sourceBucket": self.source_bucket.value if self.source_bucket else None,
            "tags": [t.value for t in self.tags],
            "tagLabels": [TAG_LABELS[t] for t in self.tags],
            "relevanceScore": self.relevance_score,
            "reason": self.reason,
            "evidence": self.evidence.to_dict() if self.evidence else None,
            "pitch": self.pitch,
        }


@dataclass
class CommsRecord:
    id: str
    type: str  # meeting | email
    title: str
    timestamp: Optional[str] = None
    preview: str = ""
    link: Optional[str] = None
    matched_keyword: Optional[str] = None
    participants: List[str] = field(default_factory=list)
    sender: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], matched_keyword: Optional[str] = None) -> "CommsRecord":
        return cls(
            id=str(data["id"]),
            type=data.get("type") or "meeting",
            title=data.get("title") or "",
            timestamp=data.get("timestamp"),
            preview=data.get("preview") or "",
            link=data.get("link"),
            matched_keyword=matched_keyword,
            participants=list(data.get("participants") or []),
            sender=data.get("sender"),
        )

    def text(self) -> str:
        return f"{self.title} {self.preview}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CommsResult:
    meetings: List[CommsRecord] = field(default_factory=list)
    emails: List[CommsRecord] = field(default_factory=list)
    mail_status: str = "ok"

    def all_records(self) -> List[CommsRecord]:
        return self.meetings + self.emails

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meetings": [m.to_dict() for m in self.meetings],
            "emails": [e.to_dict() for e in self.emails],
            "mailStatus": self.mail_status,
        }


@dataclass
class SessionContext:
    project_name: str
    partnership: PartnershipRecord
    established_at: str
    last_accessed_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectName": self.project_name,
            "partnership": self.partnership.to_dict(),
            "establishedAt": self.established_at,
            "lastAccessedAt": self.last_accessed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["SessionContext"]:
        if not data or not data.get("projectName"):
            return None
        return cls(
            project_name=data["projectName"],
            partnership=PartnershipRecord.from_dict(data.get("partnership")),
            established_at=data.get("establishedAt", ""),
            last_accessed_at=data.get("lastAccessedAt", ""),
        )


@dataclass
class SessionResolution:
    state: SessionState
    partnership: Optional[PartnershipRecord] = None
    project_name: Optional[str] = None
    looked_up_crm: bool = False


@dataclass
class RoutedIntent:
    operation: Operation
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BucketFetchResult:
    brands: List[CandidateBrand] = field(default_factory=list)
    communications: CommsResult = field(default_factory=CommsResult)
    categories: List[str] = field(default_factory=list)


@dataclass
class PitchResult:
    candidates: List[CandidateBrand] = field(default_factory=list)
    raw_text: str = ""


def _default_base_scores() -> Dict[Bucket, int]:
    return {
        Bucket.CATEGORY_MATCH: 100,
        Bucket.USER_SUGGESTED: 95,
        Bucket.WIN_BACK: 90,
        Bucket.ACTIVE_CLIENT: 80,
        Bucket.DISCOVERY: 70,
        Bucket.COMMS_FOUND: 65,
        Bucket.WILDCARD: 60,
    }


def _default_quotas() -> Dict[Tag, int]:
    return {
        Tag.CATEGORY_MATCH: 5,
        Tag.WIN_BACK: 4,
        Tag.ACTIVE_CLIENT: 4,
        Tag.WILDCARD: 5,
        Tag.DISCOVERY: 4,
    }


def _default_bucket_limits() -> Dict[Bucket, int]:
    return {
        Bucket.ACTIVE_CLIENT: 10,
        Bucket.CATEGORY_MATCH: 15,
        Bucket.WIN_BACK: 10,
        Bucket.DISCOVERY: 10,
        Bucket.WILDCARD: 5,
    }


DEFAULT_MEGA_BRANDS = [
    "coca-cola", "pepsi", "nike", "apple", "samsung", "amazon", "google",
    "microsoft", "mcdonald's", "starbucks", "toyota", "adidas",
]

DEFAULT_GENERIC_TERMS = [
    "millennial", "luxury", "thriller", "drama", "comedy", "action", "family",
    "story", "film", "movie", "series", "show", "love", "paris", "new york",
]


@dataclass
class PipelineConfig:
    """
    Tunable parameters for the brand pipeline.

    Defaults are a reference table, not a contract; ``from_env`` applies
    overrides from the environment.
    """

    # Scoring
    base_scores: Dict[Bucket, int] = field(default_factory=_default_base_scores)
    extra_tag_points: int = 10  # per qualifying tag beyond the first
    discovery_bonus: int = 50  # CategoryMatch without ActiveClient
    partnership_bonus_cap: int = 20
    ironic_alignment_bonus: int = 20
    direct_alignment_bonus: int = 15
    proven_partner_threshold: int = 10
    high_activity_threshold: int = 5

    # Selection
    bucket_quotas: Dict[Tag, int] = field(default_factory=_default_quotas)
    target_size: int = 15
    jitter_target_size: bool = False
    min_target_size: int = 12
    max_target_size: int = 20
    quick_match_size: int = 5

    # Bucket queries
    bucket_limits: Dict[Bucket, int] = field(default_factory=_default_bucket_limits)
    active_min_partnerships: int = 2
    wildcard_count: int = 5
    mega_brands: List[str] = field(default_factory=lambda: list(DEFAULT_MEGA_BRANDS))

    # Search terms and communications
    max_search_terms: int = 7
    max_term_length: int = 40
    generic_terms: List[str] = field(default_factory=lambda: list(DEFAULT_GENERIC_TERMS))
    comms_term_concurrency: int = 3
    comms_per_term_limit: int = 5
    comms_recency_days: int = 90
    comms_fallback_limit: int = 10
    max_meetings: int = 10
    max_emails: int = 10

    # Timeouts (seconds)
    call_timeout_seconds: float = settings.DEFAULT_CALL_TIMEOUT_SECONDS
    llm_timeout_seconds: float = 25.0

    # Conversation history
    history_max_chars: int = 10000

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        cfg = cls()
        if os.environ.get("BRAND_TARGET_SIZE"):
            cfg.target_size = int(os.environ["BRAND_TARGET_SIZE"])
        if os.environ.get("BRAND_JITTER_TARGET"):
            cfg.jitter_target_size = os.environ["BRAND_JITTER_TARGET"].lower() == "true"
        if os.environ.get("BRAND_DISCOVERY_BONUS"):
            cfg.discovery_bonus = int(os.environ["BRAND_DISCOVERY_BONUS"])
        if os.environ.get("BRAND_CALL_TIMEOUT_SECONDS"):
            cfg.call_timeout_seconds = float(os.environ["BRAND_CALL_TIMEOUT_SECONDS"])
        if os.environ.get("BRAND_BUCKET_QUOTAS"):
            cfg.bucket_quotas = parse_quotas(os.environ["BRAND_BUCKET_QUOTAS"], cfg.bucket_quotas)
        return cfg


def parse_quotas(raw: str, defaults: Dict[Tag, int]) -> Dict[Tag, int]:
    """Parse "CategoryMatch:5,WinBack:4" into a quota table, keeping unknown entries out."""
    quotas = dict(defaults)
    for chunk in raw.split(","):
        if ":" not in chunk:
            continue
        name, _, count = chunk.partition(":")
        try:
            quotas[Tag(name.strip())] = int(count)
        except ValueError:
            logger.warning(f"[PipelineConfig] Ignoring quota entry '{chunk}'")
    return quotas
