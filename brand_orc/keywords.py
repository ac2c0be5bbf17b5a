"""
Keyword and entity extraction.

- extract_genre: deterministic genre classification from free text
- extract_search_terms: search terms for the communications search
- extract_partnership_from_text: labelled fields pasted into a chat message
"""

import re
import logging
from typing import List, Optional

from shared.llm import LLMClient
from shared.prompts import SEARCH_TERMS_PROMPT
from shared.util import uniq_short, with_timeout

from .models import PartnershipRecord, PipelineConfig
from .normalization import split_list

logger = logging.getLogger(__name__)

# Ordered: the first matching genre wins
GENRE_PATTERNS = [
    ("action", re.compile(r"\b(action|fight|chase|explosion|battle|war|combat|hero|villain)\b", re.I)),
    ("comedy", re.compile(r"\b(comedy|funny|humor|hilarious|laugh|sitcom|comedic)\b", re.I)),
    ("drama", re.compile(r"\b(drama|emotional|family|relationship|struggle|journey)\b", re.I)),
    ("horror", re.compile(r"\b(horror|scary|terror|thriller|suspense|supernatural)\b", re.I)),
    ("documentary", re.compile(r"\b(documentary|docu|non-fiction|true story|factual)\b", re.I)),
    ("sports", re.compile(r"\b(sports?|athletic|fitness|match|competition|championship)\b", re.I)),
    ("scifi", re.compile(r"\b(sci-fi|science fiction|future|space|alien|technology|dystopian)\b", re.I)),
    ("romance", re.compile(r"\b(romance|love|romantic|dating)\b", re.I)),
    ("crime", re.compile(r"\b(crime|detective|investigation|murder|police|criminal|heist)\b", re.I)),
]

FIELD_PATTERNS = {
    "title": re.compile(r"^\s*(?:title|production|project)\s*:\s*[\"“']?(.+?)[\"”']?\s*$", re.I | re.M),
    "synopsis": re.compile(r"^\s*(?:synopsis|logline|plot)\s*:\s*(.+)$", re.I | re.M),
    "cast": re.compile(r"^\s*(?:starring|cast)\s*:\s*(.+)$", re.I | re.M),
    "genre_or_vibe": re.compile(r"^\s*(?:genre|vibe)\s*:\s*(.+)$", re.I | re.M),
    "distributor": re.compile(r"^\s*(?:distributor|studio)\s*:\s*(.+)$", re.I | re.M),
    "location": re.compile(r"^\s*(?:location|setting)\s*:\s*(.+)$", re.I | re.M),
    "release_date": re.compile(r"^\s*(?:release(?: date)?)\s*:\s*(.+)$", re.I | re.M),
}


def extract_genre(text: Optional[str]) -> Optional[str]:
    """Genre for ``text``: the first matching table entry, 'general' when none match, None without text."""
    if not text or not text.strip():
        return None
    for genre, pattern in GENRE_PATTERNS:
        if pattern.search(text):
            return genre
    return "general"


def extract_partnership_from_text(message: str) -> PartnershipRecord:
    """Pick labelled production fields ("Synopsis: ...", "Starring: ...") out of a message."""
    values = {}
    for name, pattern in FIELD_PATTERNS.items():
        match = pattern.search(message or "")
        if match:
            values[name] = match.group(1).strip()
    cast = split_list(values.pop("cast", None))
    return PartnershipRecord(cast=cast, **values)


def deterministic_terms(partnership: PartnershipRecord) -> List[str]:
    return [t for t in (partnership.title, partnership.lead_cast) if t]


async def extract_search_terms(
    partnership: PartnershipRecord,
    llm: Optional[LLMClient],
    config: Optional[PipelineConfig] = None,
) -> List[str]:
    """
    Title and lead cast member, plus 2-3 specific terms the LLM pulls from the
    synopsis. Without an LLM (or when it fails) only the deterministic terms
    are returned.
    """
    config = config or PipelineConfig()
    base = deterministic_terms(partnership)
    terms = list(base)

    if llm is not None and llm.available and partnership.synopsis:
        prompt = SEARCH_TERMS_PROMPT.format(
            synopsis=partnership.synopsis[:1500], existing=", ".join(base) or "none"
        )
        parsed = await with_timeout(
            llm.complete_json(prompt, temperature=0.2, max_tokens=120),
            config.llm_timeout_seconds,
            None,
            "search term extraction",
        )
        extra = parsed.get("terms") if isinstance(parsed, dict) else None
        if isinstance(extra, list):
            terms.extend(str(t) for t in extra[:3] if isinstance(t, (str, int)))
        else:
            logger.info("[Keywords] LLM returned no usable terms, using deterministic terms only")

    result = uniq_short(terms, config.max_search_terms, config.max_term_length)
    logger.info(f"[Keywords] Search terms: {result}")
    return result
