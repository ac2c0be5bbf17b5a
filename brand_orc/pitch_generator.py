"""
Creative-Content Generation

Attaches evidence from the communications corpus to each pitch candidate,
asks the LLM for one four-field pitch block per candidate, and maps the blocks
back to their candidates (by name, then by position).

Every candidate passed in comes back with a pitch: when generation fails or
a block cannot be matched, a templated pitch is built from the candidate's
own fields.
"""

import re
import logging
from dataclasses import replace
from typing import Dict, List, Optional

from langsmith import traceable

from shared.llm import LLMClient
from shared.progress_log import ProgressSink, ProgressSteps
from shared.prompts import PITCH_PROMPT
from shared.util import with_timeout

from .models import (
    NO_EVIDENCE,
    CandidateBrand,
    CommsResult,
    EvidenceRef,
    PartnershipRecord,
    PipelineConfig,
    PitchResult,
)

logger = logging.getLogger(__name__)

SECTION_SPLIT = re.compile(r"^\s*[*#\-]*\s*Brand\s*:\s*", re.I | re.M)
FIELD_PATTERNS = {
    "integration_idea": re.compile(r"Integration idea\s*:\s*(.+?)(?=\n\s*[*#\-]*\s*(?:Why it works|Insight)\s*:|\Z)", re.I | re.S),
    "why_it_works": re.compile(r"Why it works\s*:\s*(.+?)(?=\n\s*[*#\-]*\s*(?:Insight|Integration idea)\s*:|\Z)", re.I | re.S),
    "insight": re.compile(r"Insight\s*:\s*(.+?)(?=\n\s*[*#\-]*\s*(?:Integration idea|Why it works)\s*:|\Z)", re.I | re.S),
}


def find_evidence(candidate: CandidateBrand, comms: Optional[CommsResult]) -> Optional[EvidenceRef]:
    """First meeting, else first email, whose title or preview mentions the brand by name."""
    if comms is None:
        return None
    name = (candidate.name or "").strip().lower()
    if len(name) < 2:
        return None
    for record in list(comms.meetings) + list(comms.emails):
        if name in record.text().lower():
            return EvidenceRef(
                type=record.type,
                id=record.id,
                title=record.title,
                timestamp=record.timestamp,
                link=record.link,
            )
    return None


def describe_evidence(evidence: Optional[EvidenceRef]) -> str:
    if evidence is None:
        return NO_EVIDENCE
    when = f" ({evidence.timestamp[:10]})" if evidence.timestamp else ""
    kind = "Meeting" if evidence.type == "meeting" else "Email"
    return f'{kind}: "{evidence.title}"{when}'


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text.replace("**", "")).strip()


def parse_sections(raw_text: str) -> List[Dict[str, str]]:
    """Split generated text on "Brand:" markers into field dicts."""
    if not raw_text or not raw_text.strip():
        return []
    sections = []
    for chunk in SECTION_SPLIT.split(raw_text)[1:]:
        lines = chunk.strip().splitlines()
        if not lines:
            continue
        section = {"brand": _clean(lines[0])}
        for key, pattern in FIELD_PATTERNS.items():
            match = pattern.search(chunk)
            section[key] = _clean(match.group(1)) if match else ""
        sections.append(section)
    return sections


def fallback_pitch(
    candidate: CandidateBrand, partnership: Optional[PartnershipRecord]
) -> Dict[str, str]:
    title = (partnership.title if partnership else None) or "the production"
    category = candidate.category or "their category"
    why = f"{category} fits the world of {title}"
    if candidate.partnership_count > 0:
        why += f", and {candidate.name} has {candidate.partnership_count} past partnerships with us"
    return {
        "brand": candidate.name,
        "integration_idea": (
            f"Place {candidate.name} in a key scene of {title} where the characters "
            f"would naturally reach for a {category.lower()} product."
        ),
        "why_it_works": why + ".",
        "insight": describe_evidence(candidate.evidence),
    }


def match_sections(
    candidates: List[CandidateBrand], sections: List[Dict[str, str]]
) -> List[Optional[Dict[str, str]]]:
    """
    Assign parsed sections to candidates.

    Case-insensitive name containment first; candidates still unmatched take
    the unused sections in their original order.
    """
    assigned: List[Optional[Dict[str, str]]] = [None] * len(candidates)
    used = set()

    for ci, candidate in enumerate(candidates):
        name = candidate.name.strip().lower()
        for si, section in enumerate(sections):
            if si in used:
                continue
            label = section.get("brand", "").lower()
            if label and (name in label or label in name):
                assigned[ci] = section
                used.add(si)
                break

    leftovers = [s for si, s in enumerate(sections) if si not in used]
    for ci in range(len(candidates)):
        if assigned[ci] is None and leftovers:
            assigned[ci] = leftovers.pop(0)
            logger.warning(
                f"[PitchGenerator] No name match for '{candidates[ci].name}', using positional match"
            )
    return assigned


class PitchGenerator:
    """
    Generates pitch copy for the selected candidates.

    Responsibilities:
    - Resolve evidence (or the no-evidence sentinel) per candidate
    - Batch one generation call for all candidates
    - Reconcile generated blocks to candidates, with templated fallbacks
    """

    def __init__(self, llm: Optional[LLMClient], config: Optional[PipelineConfig] = None):
        self.llm = llm
        self.config = config or PipelineConfig()

    def build_prompt(self, candidates: List[CandidateBrand], partnership: PartnershipRecord) -> str:
        blocks = []
        for i, candidate in enumerate(candidates, start=1):
            blocks.append(
                f"{i}. {candidate.name}\n"
                f"   Category: {candidate.category}\n"
                f"   Subcategories: {', '.join(candidate.subcategories) or 'n/a'}\n"
                f"   Evidence: {describe_evidence(candidate.evidence)}"
            )
        return PITCH_PROMPT.format(
            title=partnership.title or "this production",
            production=partnership.summary(),
            brands="\n".join(blocks),
            no_evidence=NO_EVIDENCE,
        )

    @traceable(run_type="chain", name="generate_pitches")
    async def generate_pitches(
        self,
        candidates: List[CandidateBrand],
        partnership: PartnershipRecord,
        comms: Optional[CommsResult] = None,
        progress: Optional[ProgressSink] = None,
        use_llm: bool = True,
    ) -> PitchResult:
        progress = progress or ProgressSink()
        if not candidates:
            return PitchResult()

        enriched = [replace(c, tags=list(c.tags)) for c in candidates]
        for candidate in enriched:
            candidate.evidence = find_evidence(candidate, comms)

        raw_text = ""
        if use_llm and self.llm is not None and self.llm.available:
            await progress.emit(
                f"Drafting pitches for {', '.join(c.name for c in enriched)}",
                ProgressSteps.PITCHES,
            )
            raw_text = await with_timeout(
                self.llm.complete(
                    self.build_prompt(enriched, partnership),
                    temperature=0.7,
                    max_tokens=900,
                ),
                self.config.llm_timeout_seconds,
                "",
                "pitch generation",
            )

        sections = parse_sections(raw_text)
        if not sections:
            logger.info("[PitchGenerator] No generated pitches, using templated pitches")
        assigned = match_sections(enriched, sections)

        for candidate, section in zip(enriched, assigned):
            fallback = fallback_pitch(candidate, partnership)
            if section is None:
                pitch = fallback
            else:
                pitch = {
                    key: section.get(key) or fallback[key]
                    for key in ("integration_idea", "why_it_works", "insight")
                }
                pitch["brand"] = candidate.name
            if candidate.evidence is None:
                # never cite evidence that does not exist
                pitch["insight"] = NO_EVIDENCE
            pitch["evidence"] = candidate.evidence.to_dict() if candidate.evidence else None
            pitch["generated"] = section is not None
            candidate.pitch = pitch

        return PitchResult(candidates=enriched, raw_text=raw_text)
