import logging
from datetime import datetime, timezone
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

TRANSCRIPT_FIELDS = """
      id
      title
      date
      participants
      transcript_url
      summary {
        overview
        keywords
      }
"""


def _to_iso(value: Any) -> Optional[str]:
    # Fireflies returns epoch milliseconds
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
    return value


class TranscriptsClient:
    """Meeting transcripts from the Fireflies GraphQL API, mapped to plain comms dicts."""

    def __init__(self, api_key: Optional[str] = None, url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.FIREFLIES_API_KEY
        self.url = url or config.FIREFLIES_URL

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    @staticmethod
    def build_query(keyword: Optional[str]) -> str:
        if keyword:
            signature = "($keyword: String, $fromDate: DateTime, $limit: Int)"
            arguments = "(keyword: $keyword, fromDate: $fromDate, limit: $limit)"
        else:
            signature = "($fromDate: DateTime, $limit: Int)"
            arguments = "(fromDate: $fromDate, limit: $limit)"
        return f"query SearchTranscripts{signature} {{\n  transcripts{arguments} {{{TRANSCRIPT_FIELDS}  }}\n}}"

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception_type((aiohttp.ClientError, TransientCollaboratorError)),
        reraise=True,
    )
    async def _post(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        async with aiohttp.ClientSession() as session:
            async with session.post(
                self.url, headers=headers, json={"query": query, "variables": variables}
            ) as response:
                if response.status == 200:
                    return await response.json()
                text = await response.text()
                if response.status == 429 or response.status >= 500:
                    raise TransientCollaboratorError("transcripts", text[:200], response.status)
                raise CollaboratorError("transcripts", text[:200], response.status)

    @staticmethod
    def _keyword_rejected(errors: List[Dict[str, Any]]) -> bool:
        for error in errors or []:
            code = str(error.get("code") or (error.get("extensions") or {}).get("code") or "")
            message = str(error.get("message", "")).lower()
            if code == "invalid_arguments" or "keyword" in message:
                return True
        return False

    async def search_transcripts(
        self,
        keyword: Optional[str] = None,
        from_date: Optional[str] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        Search meeting transcripts.

        An empty keyword is a pure recency query. When the service rejects the
        keyword argument, the search is retried once without it.
        """
        if not self.available:
            logger.info("[TranscriptsClient] No Fireflies key configured")
            return []

        keyword = (keyword or "").strip() or None
        variables: Dict[str, Any] = {"limit": limit}
        if from_date:
            variables["fromDate"] = from_date
        if keyword:
            variables["keyword"] = keyword

        payload = await self._post(self.build_query(keyword), variables)
        errors = payload.get("errors")
        if errors:
            if keyword and self._keyword_rejected(errors):
                logger.warning(
                    f"[TranscriptsClient] Keyword '{keyword}' rejected, retrying without it"
                )
                return await self.search_transcripts(None, from_date, limit)
            logger.error(f"[TranscriptsClient] GraphQL errors: {errors}")
            return []

        transcripts = (payload.get("data") or {}).get("transcripts") or []
        return [self._to_comms(t) for t in transcripts if t.get("id")]

    @staticmethod
    def _to_comms(transcript: Dict[str, Any]) -> Dict[str, Any]:
        summary = transcript.get("summary") or {}
        return {
            "id": str(transcript["id"]),
            "type": "meeting",
            "title": transcript.get("title") or "Untitled meeting",
            "timestamp": _to_iso(transcript.get("date")),
            "preview": (summary.get("overview") or "")[:300],
            "link": transcript.get("transcript_url"),
            "participants": transcript.get("participants") or [],
        }
