"""
Communications Search

Fans keyword searches out across the transcript and mail collaborators,
deduplicates hits by record id and falls back to a recency query so there is
always some meeting context to show.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from shared.mail_client import MailSearchResult, MailStatus
from shared.observability import log_event
from shared.progress_log import ProgressSink, ProgressSteps
from shared.util import uniq_short, with_timeout

from .keywords import extract_search_terms
from .models import CommsRecord, CommsResult, PartnershipRecord, PipelineConfig

logger = logging.getLogger(__name__)


class CommsSearcher:
    """
    Searches meetings and emails for a production or a brand.

    Responsibilities:
    - Run one transcript search and one mail search per term, concurrently
    - Bound how many terms are in flight at once
    - Deduplicate by record id, first occurrence (in term order) wins
    - Issue exactly one recency query when no meeting matched
    """

    def __init__(self, transcripts, mail, llm=None, config: Optional[PipelineConfig] = None):
        self.transcripts = transcripts
        self.mail = mail
        self.llm = llm
        self.config = config or PipelineConfig()

    def _is_generic(self, term: str) -> bool:
        return term.strip().lower() in {g.lower() for g in self.config.generic_terms}

    async def _meetings_for(self, term: str) -> List[Dict[str, Any]]:
        if self._is_generic(term):
            logger.debug(f"[CommsSearch] Skipping generic transcript term '{term}'")
            return []
        return await with_timeout(
            self.transcripts.search_transcripts(
                keyword=term, limit=self.config.comms_per_term_limit
            ),
            self.config.call_timeout_seconds,
            [],
            f"transcripts '{term}'",
        )

    async def _emails_for(self, term: str) -> MailSearchResult:
        return await with_timeout(
            self.mail.search_emails([term], limit=self.config.comms_per_term_limit),
            self.config.call_timeout_seconds,
            MailSearchResult(status=MailStatus.ERROR),
            f"mail '{term}'",
        )

    async def _search_terms(
        self, terms: List[str]
    ) -> List[Tuple[str, List[Dict[str, Any]], MailSearchResult]]:
        semaphore = asyncio.Semaphore(max(1, self.config.comms_term_concurrency))

        async def search_one(term: str):
            async with semaphore:
                meetings, mail = await asyncio.gather(
                    self._meetings_for(term), self._emails_for(term)
                )
                return term, meetings, mail

        results = await asyncio.gather(
            *[search_one(term) for term in terms], return_exceptions=True
        )

        settled = []
        for term, result in zip(terms, results):
            if isinstance(result, Exception):
                logger.error(f"[CommsSearch] Search for '{term}' failed: {result}")
                continue
            settled.append(result)
        return settled

    @staticmethod
    def _mail_status(statuses: List[MailStatus]) -> MailStatus:
        if not statuses:
            return MailStatus.OK
        if MailStatus.FORBIDDEN_POLICY in statuses:
            return MailStatus.FORBIDDEN_POLICY
        if all(s == MailStatus.NO_CREDENTIALS for s in statuses):
            return MailStatus.NO_CREDENTIALS
        if MailStatus.OK not in statuses:
            return MailStatus.ERROR
        return MailStatus.OK

    async def _recent_meetings(self) -> List[Dict[str, Any]]:
        from_date = (
            datetime.now(timezone.utc) - timedelta(days=self.config.comms_recency_days)
        ).isoformat()
        return await with_timeout(
            self.transcripts.search_transcripts(
                keyword=None, from_date=from_date, limit=self.config.comms_fallback_limit
            ),
            self.config.call_timeout_seconds,
            [],
            "recent transcripts",
        )

    async def _collect(self, terms: List[str], use_fallback: bool) -> CommsResult:
        meetings: Dict[str, CommsRecord] = {}
        emails: Dict[str, CommsRecord] = {}
        statuses: List[MailStatus] = []

        for term, term_meetings, mail in await self._search_terms(terms):
            for raw in term_meetings or []:
                if raw.get("id") and str(raw["id"]) not in meetings:
                    meetings[str(raw["id"])] = CommsRecord.from_dict(raw, term)
            for raw in mail.emails or []:
                if raw.get("id") and str(raw["id"]) not in emails:
                    emails[str(raw["id"])] = CommsRecord.from_dict(raw, term)
            statuses.append(mail.status)

        if use_fallback and not meetings:
            logger.info("[CommsSearch] No keyword meetings, loading recent activity")
            for raw in await self._recent_meetings():
                if raw.get("id") and str(raw["id"]) not in meetings:
                    meetings[str(raw["id"])] = CommsRecord.from_dict(raw)

        status = self._mail_status(statuses)
        if status == MailStatus.FORBIDDEN_POLICY:
            log_event("mail_blocked_by_policy", terms=len(terms))
        elif status == MailStatus.ERROR:
            log_event("mail_search_failed", terms=len(terms))

        return CommsResult(
            meetings=list(meetings.values())[: self.config.max_meetings],
            emails=list(emails.values())[: self.config.max_emails],
            mail_status=status.value,
        )

    async def search_communications(
        self,
        partnership: PartnershipRecord,
        progress: Optional[ProgressSink] = None,
    ) -> CommsResult:
        progress = progress or ProgressSink()
        terms = await extract_search_terms(partnership, self.llm, self.config)
        await progress.emit(
            f"Searching meetings and emails for {len(terms)} terms", ProgressSteps.COMMS
        )

        result = await self._collect(terms, use_fallback=True)
        logger.info(
            f"[CommsSearch] {len(result.meetings)} meetings, {len(result.emails)} emails "
            f"(mail status: {result.mail_status})"
        )
        await progress.emit(
            f"Found {len(result.meetings)} meetings and {len(result.emails)} emails",
            ProgressSteps.COMMS,
        )
        return result

    async def search_brand_activity(
        self, brand_name: str, progress: Optional[ProgressSink] = None
    ) -> CommsResult:
        """Meetings and emails mentioning one brand; no recency fallback."""
        progress = progress or ProgressSink()
        await progress.emit(f"Looking up recent activity for {brand_name}", ProgressSteps.COMMS)
        if not brand_name or not brand_name.strip():
            return CommsResult()
        return await self._collect([brand_name.strip()], use_fallback=False)

    async def search_mentions(self, names: List[str]) -> CommsResult:
        """Meetings and emails mentioning any of the given names; used as pitch evidence."""
        terms = uniq_short(names, self.config.max_search_terms, self.config.max_term_length)
        if not terms:
            return CommsResult()
        return await self._collect(terms, use_fallback=False)


def build_timeline(result: CommsResult) -> List[Dict[str, Any]]:
    """Meetings and emails merged into one list, newest first."""
    records = result.all_records()
    records.sort(key=lambda r: r.timestamp or "", reverse=True)
    return [r.to_dict() for r in records]
