"""
Scoring & Tagging Engine

Pure functions over the merged candidate list: secondary tags, the
ActiveClient/WinBack exclusion pass, thematic alignment with the synopsis,
the communications signal pass and the composite relevance score.

Scores are recomputed from the final tag set every time; nothing increments
a score in place.
"""

import re
import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional

from .enums import Bucket, ClientStatus, Tag, bucket_rank
from .models import CandidateBrand, CommsResult, PartnershipRecord, PipelineConfig

logger = logging.getLogger(__name__)

IRONIC = "ironic"
DIRECT = "direct"


@dataclass(frozen=True)
class AlignmentRule:
    name: str
    kind: str
    category_pattern: "re.Pattern"
    story_pattern: "re.Pattern"
    note: str


# Ironic rules come first; only the first matching rule applies
ALIGNMENT_RULES = [
    AlignmentRule(
        "security_vs_heist",
        IRONIC,
        re.compile(r"secur|safe|alarm|lock|surveillance", re.I),
        re.compile(r"heist|vault|breaks? in(?:to)?|breaking in|burglar|robber|steal|thie(?:f|ves)", re.I),
        "{brand} protects exactly what the story's crew is trying to crack",
    ),
    AlignmentRule(
        "insurance_vs_disaster",
        IRONIC,
        re.compile(r"insur", re.I),
        re.compile(r"crash|disaster|wreck|accident|chaos|catastroph", re.I),
        "{brand} promises calm in a story built on things going wrong",
    ),
    AlignmentRule(
        "automotive",
        DIRECT,
        re.compile(r"auto|car\b|cars\b|vehicle|motor", re.I),
        re.compile(r"chase|racing|race\b|road trip|driver|getaway", re.I),
        "{brand} can put the audience in the driver's seat",
    ),
    AlignmentRule(
        "food_and_drink",
        DIRECT,
        re.compile(r"food|beverage|drink|dining|restaurant|coffee|spirits", re.I),
        re.compile(r"chef|restaurant|kitchen|cook|dinner|party|celebrat|\bbar\b", re.I),
        "{brand} belongs on the table in the story's key scenes",
    ),
    AlignmentRule(
        "travel",
        DIRECT,
        re.compile(r"travel|hospitality|hotel|airline|luggage", re.I),
        re.compile(r"trip|vacation|hotel|journey|flight|island|abroad", re.I),
        "{brand} travels with the characters",
    ),
    AlignmentRule(
        "technology",
        DIRECT,
        re.compile(r"tech|electronic|gaming|software|phone|computer", re.I),
        re.compile(r"hack|computer|robot|future|virtual|\bai\b|code", re.I),
        "{brand} is part of how the characters solve the story's problem",
    ),
    AlignmentRule(
        "fashion_and_beauty",
        DIRECT,
        re.compile(r"fashion|apparel|beauty|cosmetic|jewel", re.I),
        re.compile(r"gala|runway|wedding|red carpet|\bmodel|prom", re.I),
        "{brand} dresses the story's big night",
    ),
    AlignmentRule(
        "sports_and_fitness",
        DIRECT,
        re.compile(r"sport|fitness|athletic", re.I),
        re.compile(r"athlete|training|championship|coach|marathon|tournament", re.I),
        "{brand} fits the story's competitive arc",
    ),
]


def _story_text(partnership: Optional[PartnershipRecord]) -> str:
    if partnership is None:
        return ""
    return " ".join(filter(None, [partnership.title, partnership.synopsis, partnership.genre_or_vibe]))


def find_alignment(
    candidate: CandidateBrand, partnership: Optional[PartnershipRecord]
) -> Optional[AlignmentRule]:
    story = _story_text(partnership)
    if not story:
        return None
    category_text = " ".join([candidate.category or ""] + list(candidate.subcategories))
    for rule in ALIGNMENT_RULES:
        if rule.category_pattern.search(category_text) and rule.story_pattern.search(story):
            return rule
    return None


def alignment_bonus(rule: Optional[AlignmentRule], config: PipelineConfig) -> int:
    if rule is None:
        return 0
    return config.ironic_alignment_bonus if rule.kind == IRONIC else config.direct_alignment_bonus


def alignment_reason(rule: AlignmentRule, candidate: CandidateBrand, reason: str) -> str:
    label = "Ironic tension" if rule.kind == IRONIC else "Story fit"
    note = rule.note.format(brand=candidate.name)
    return f"{label}: {note}. {reason}".strip()


def matches_categories(candidate: CandidateBrand, relevant: Iterable[str]) -> bool:
    wanted = [r.strip().lower() for r in relevant if r and r.strip()]
    if not wanted:
        return False
    own = [c.strip().lower() for c in [candidate.category] + list(candidate.subcategories) if c]
    for mine in own:
        for target in wanted:
            if mine == target or mine in target or target in mine:
                return True
    return False


def apply_secondary_tags(
    candidate: CandidateBrand, relevant_categories: Iterable[str], config: PipelineConfig
):
    if matches_categories(candidate, relevant_categories):
        candidate.add_tag(Tag.CATEGORY_MATCH)
    if candidate.client_status.is_current_client:
        candidate.add_tag(Tag.ACTIVE_CLIENT)
    if candidate.client_status == ClientStatus.INACTIVE and candidate.partnership_count > 0:
        candidate.add_tag(Tag.WIN_BACK)
    if candidate.partnership_count >= config.proven_partner_threshold:
        candidate.add_tag(Tag.PROVEN_PARTNER)
    if candidate.deals_count >= config.high_activity_threshold:
        candidate.add_tag(Tag.HIGH_ACTIVITY)
    if (candidate.client_type or "").strip().lower() == "retainer":
        candidate.add_tag(Tag.RETAINER)


def enforce_status_exclusion(candidate: CandidateBrand):
    """
    ActiveClient and WinBack are status-derived and mutually exclusive.

    Active/Contract drops WinBack and forces ActiveClient; Inactive drops
    ActiveClient. A primary tag that contradicts the status moves to the
    status-derived bucket.
    """
    status = candidate.client_status
    if status.is_current_client:
        drop, keep = Tag.WIN_BACK, Tag.ACTIVE_CLIENT
    elif status == ClientStatus.INACTIVE:
        drop, keep = Tag.ACTIVE_CLIENT, None
    else:
        # no status to decide by: the primary tag wins
        if Tag.ACTIVE_CLIENT in candidate.tags and Tag.WIN_BACK in candidate.tags:
            secondary = Tag.ACTIVE_CLIENT if candidate.primary_tag == Tag.WIN_BACK else Tag.WIN_BACK
            candidate.tags.remove(secondary)
        return

    if drop in candidate.tags:
        candidate.tags.remove(drop)
    if candidate.source_bucket is not None and candidate.source_bucket.value == drop.value:
        new_bucket = Bucket.ACTIVE_CLIENT if keep else Bucket.WIN_BACK
        logger.warning(
            f"[Scoring] {candidate.name}: primary {drop.value} contradicts status "
            f"{status.value}, moving to {new_bucket.value}"
        )
        candidate.source_bucket = new_bucket
        candidate.tags = [Tag.for_bucket(new_bucket)] + [
            t for t in candidate.tags if t != Tag.for_bucket(new_bucket)
        ]
    if keep is not None:
        candidate.add_tag(keep)


def mark_comms_signals(candidates: List[CandidateBrand], comms: Optional[CommsResult]):
    """Tag candidates whose name appears in a meeting or email. Tag only, no score."""
    if comms is None:
        return
    corpus = [record.text().lower() for record in comms.all_records()]
    if not corpus:
        return
    for candidate in candidates:
        name = (candidate.name or "").strip().lower()
        if len(name) < 3:
            continue
        if any(name in text for text in corpus):
            candidate.add_tag(Tag.COMMS_SIGNAL)


def compute_score(candidate: CandidateBrand, config: PipelineConfig, bonus: int = 0) -> float:
    base = config.base_scores.get(candidate.source_bucket, min(config.base_scores.values()))
    qualifying = [t for t in candidate.tags if t != Tag.COMMS_SIGNAL]
    extra = max(0, len(qualifying) - 1) * config.extra_tag_points
    discovery = (
        config.discovery_bonus
        if Tag.CATEGORY_MATCH in candidate.tags and Tag.ACTIVE_CLIENT not in candidate.tags
        else 0
    )
    history = min(config.partnership_bonus_cap, max(0, candidate.partnership_count))
    return float(base + extra + discovery + history + bonus)


def score_candidates(
    candidates: List[CandidateBrand],
    partnership: Optional[PartnershipRecord] = None,
    relevant_categories: Optional[Iterable[str]] = None,
    comms: Optional[CommsResult] = None,
    config: Optional[PipelineConfig] = None,
) -> List[CandidateBrand]:
    """
    Tag and score a merged candidate list.

    Returns new candidate objects sorted by score descending; ties keep bucket
    priority, then merge order. The input list is not modified.
    """
    config = config or PipelineConfig()
    relevant = list(relevant_categories or [])
    result: List[CandidateBrand] = []

    for original in candidates:
        candidate = replace(original, tags=list(original.tags))
        if candidate.source_bucket is None:
            candidate.source_bucket = Bucket.WILDCARD
        primary = Tag.for_bucket(candidate.source_bucket)
        if primary not in candidate.tags:
            candidate.tags.insert(0, primary)

        apply_secondary_tags(candidate, relevant, config)
        enforce_status_exclusion(candidate)

        rule = find_alignment(candidate, partnership)
        if rule is not None:
            candidate.reason = alignment_reason(rule, candidate, original.reason)
        candidate.relevance_score = compute_score(candidate, config, alignment_bonus(rule, config))
        result.append(candidate)

    mark_comms_signals(result, comms)

    result.sort(key=lambda c: (-c.relevance_score, bucket_rank(c.source_bucket)))
    logger.info(f"[Scoring] Scored {len(result)} candidates")
    return result
