import logging
from typing import List, Optional

from shared.llm import LLMClient
from shared.prompts import CATEGORY_PROMPT
from shared.util import uniq_short, with_timeout

from .keywords import extract_genre
from .models import PartnershipRecord, PipelineConfig

logger = logging.getLogger(__name__)

# Fallback when no LLM is available
GENRE_CATEGORIES = {
    "action": ["Automotive", "Electronics & Appliances", "Sports & Fitness"],
    "comedy": ["Food & Beverage", "Entertainment"],
    "drama": ["Fashion & Apparel", "Health & Beauty", "Home & Garden"],
    "horror": ["Entertainment", "Gaming", "Security"],
    "documentary": ["Travel & Hospitality", "Food & Beverage", "Technology"],
    "sports": ["Sports & Fitness", "Food & Beverage", "Health & Beauty"],
    "scifi": ["Electronics & Appliances", "Gaming", "Automotive"],
    "romance": ["Floral", "Fashion & Apparel", "Health & Beauty"],
    "crime": ["Automotive", "Security", "Electronics & Appliances"],
    "general": ["Food & Beverage", "Fashion & Apparel", "Automotive"],
}


def static_categories(partnership: PartnershipRecord) -> List[str]:
    text = " ".join(filter(None, [partnership.genre_or_vibe, partnership.synopsis]))
    genre = extract_genre(text)
    if genre is None:
        return []
    return list(GENRE_CATEGORIES.get(genre, []))


async def resolve_categories(
    partnership: PartnershipRecord,
    llm: Optional[LLMClient],
    config: Optional[PipelineConfig] = None,
) -> List[str]:
    """
    Relevant CRM categories for the production.

    Asks the LLM for 5-10 labels when a synopsis is available; any failure or
    a short answer falls back to the static genre table.
    """
    config = config or PipelineConfig()
    if llm is not None and llm.available and partnership.synopsis:
        parsed = await with_timeout(
            llm.complete_json(
                CATEGORY_PROMPT.format(production=partnership.summary()),
                temperature=0.2,
                max_tokens=200,
            ),
            config.llm_timeout_seconds,
            None,
            "category resolution",
        )
        categories = parsed.get("categories") if isinstance(parsed, dict) else None
        if isinstance(categories, list):
            cleaned = uniq_short([c for c in categories if isinstance(c, str)], 10, 60)
            if cleaned:
                logger.info(f"[Categorizer] LLM categories: {cleaned}")
                return cleaned
        logger.info("[Categorizer] LLM categorization unusable, using genre table")

    categories = static_categories(partnership)
    logger.info(f"[Categorizer] Static categories: {categories}")
    return categories
