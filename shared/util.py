# utility functions
import re
import asyncio
import logging
import unicodedata
from datetime import datetime, timezone
from typing import Any, Awaitable, Iterable, List, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


##########################################################
# ASYNC HELPERS
##########################################################


async def with_timeout(
    awaitable: Awaitable[T], seconds: float, default: T, label: str = "call"
) -> T:
    """
    Await a collaborator call with a hard timeout.

    Returns ``default`` when the call times out or raises, so a slow or failing
    branch never aborts the caller. The exception is logged, not propagated.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        logger.warning(f"[with_timeout] {label} timed out after {seconds}s")
        return default
    except Exception as e:
        logger.error(f"[with_timeout] {label} failed: {e}")
        return default


async def settle_all(awaitables: Iterable[Awaitable[Any]], default: Any = None) -> List[Any]:
    """
    Run awaitables concurrently and return their results in call order.

    Failed branches are replaced by ``default`` (a fresh copy for list/dict
    defaults) instead of raising.
    """
    results = await asyncio.gather(*awaitables, return_exceptions=True)
    settled = []
    for idx, result in enumerate(results):
        if isinstance(result, Exception):
            logger.error(f"[settle_all] Branch {idx} failed: {result}")
            settled.append(type(default)() if isinstance(default, (list, dict)) else default)
        else:
            settled.append(result)
    return settled


##########################################################
# TEXT HELPERS
##########################################################


def normalize_term(term: Any, max_length: int = 40) -> str:
    """Collapse whitespace, strip quotes and cut a search term to ``max_length``."""
    if term is None:
        return ""
    text = re.sub(r"\s+", " ", str(term)).strip().strip("\"'“”‘’")
    return text[:max_length].strip()


def uniq_short(terms: Iterable[Any], limit: int = 7, max_length: int = 40) -> List[str]:
    """Case-insensitive dedup preserving first occurrence, capped at ``limit``."""
    seen = set()
    out = []
    for raw in terms:
        term = normalize_term(raw, max_length)
        key = term.lower()
        if not term or key in seen:
            continue
        seen.add(key)
        out.append(term)
        if len(out) >= limit:
            break
    return out


def slugify(value: str) -> str:
    """ASCII, lowercase, dash separated slug. Empty input gives 'unnamed'."""
    text = unicodedata.normalize("NFKD", value or "").encode("ascii", "ignore").decode()
    text = re.sub(r"[^a-zA-Z0-9]+", "-", text.lower()).strip("-")
    return text or "unnamed"


def truncate(text: Optional[str], limit: int, keep: str = "end") -> str:
    """Trim text to ``limit`` characters, keeping either the start or the end."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[-limit:] if keep == "end" else text[:limit]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_int(value: Any, default: int = 0) -> int:
    """Parse CRM numeric strings ('12', '12.0', None) into non-negative ints."""
    if value is None or value == "":
        return default
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return default
