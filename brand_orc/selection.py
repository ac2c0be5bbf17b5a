"""
Diversified Selection

Builds the shortlist shown to the user: every bucket gets a guaranteed quota
before the remaining slots are filled by score. Also picks the two candidates
that receive generated pitches.
"""

import hashlib
import logging
from typing import Dict, List, Optional

from .enums import Tag
from .models import CandidateBrand, PartnershipRecord, PipelineConfig

logger = logging.getLogger(__name__)


def _by_score(candidates: List[CandidateBrand]) -> List[CandidateBrand]:
    # stable: equal scores keep the incoming (priority) order
    return sorted(candidates, key=lambda c: -c.relevance_score)


def diversify(
    scored: List[CandidateBrand],
    target_size: int,
    quotas: Optional[Dict[Tag, int]] = None,
) -> List[CandidateBrand]:
    """
    Tier 1 takes up to each bucket's quota of not-yet-selected candidates that
    carry the bucket tag, best score first. Tier 2 fills the remaining slots by
    score. The result is sorted by score and cut to ``target_size``.
    """
    if target_size <= 0 or not scored:
        return []
    quotas = quotas if quotas is not None else PipelineConfig().bucket_quotas
    ranked = _by_score(scored)

    selected: List[CandidateBrand] = []
    chosen = set()

    for tag, quota in quotas.items():
        taken = 0
        for candidate in ranked:
            if taken >= quota:
                break
            if candidate.id.value in chosen or tag not in candidate.tags:
                continue
            selected.append(candidate)
            chosen.add(candidate.id.value)
            taken += 1
        logger.debug(f"[Selection] {tag.value}: {taken}/{quota} guaranteed slots used")

    for candidate in ranked:
        if len(selected) >= target_size:
            break
        if candidate.id.value not in chosen:
            selected.append(candidate)
            chosen.add(candidate.id.value)

    result = _by_score(selected)[:target_size]
    logger.info(f"[Selection] Shortlist of {len(result)} from {len(scored)} candidates")
    return result


def target_size_for(partnership: Optional[PartnershipRecord], config: PipelineConfig) -> int:
    """
    Configured shortlist size, or with jitter enabled, the default shifted by
    -3..+3 from a hash of the production text (stable for the same production).
    """
    if not config.jitter_target_size or partnership is None:
        return config.target_size
    seed = (partnership.synopsis or partnership.title or "").encode("utf-8")
    if not seed:
        return config.target_size
    jitter = int(hashlib.md5(seed).hexdigest(), 16) % 7 - 3
    return max(config.min_target_size, min(config.max_target_size, config.target_size + jitter))


def select_pitch_pair(pool: List[CandidateBrand]) -> List[CandidateBrand]:
    """
    A "safe bet" (CategoryMatch plus WinBack or ActiveClient, else the best
    CategoryMatch) and a "creative bet" (best Wildcard or Discovery). Empty
    slots are filled with the best remaining candidates.
    """
    ranked = _by_score(pool)
    picks: List[CandidateBrand] = []

    def first(predicate) -> Optional[CandidateBrand]:
        taken = {p.id.value for p in picks}
        for candidate in ranked:
            if candidate.id.value not in taken and predicate(candidate):
                return candidate
        return None

    safe = first(
        lambda c: Tag.CATEGORY_MATCH in c.tags
        and (Tag.WIN_BACK in c.tags or Tag.ACTIVE_CLIENT in c.tags)
    ) or first(lambda c: Tag.CATEGORY_MATCH in c.tags)
    if safe is not None:
        picks.append(safe)

    creative = first(lambda c: Tag.WILDCARD in c.tags or Tag.DISCOVERY in c.tags)
    if creative is not None:
        picks.append(creative)

    while len(picks) < 2:
        filler = first(lambda c: True)
        if filler is None:
            break
        picks.append(filler)

    return picks
