"""
Brand Assistant Orchestrator

This module contains the BrandOrchestrator class, the entry point for one
conversational turn. It resolves the project for the turn, routes the message
to an operation, runs that operation and records the turn in the history and
the progress log.
"""

import os
import time
import uuid
import logging
from typing import Any, Dict, List, Optional

from langsmith import traceable

from shared.crm_client import CrmClient
from shared.exceptions import MissingRequiredFieldError
from shared.kv_store import KeyValueStore, get_kv_store
from shared.llm import LLMClient
from shared.mail_client import MailClient
from shared.observability import log_event
from shared.progress_log import ProgressLog, ProgressSink, ProgressSteps
from shared.prompts import GENERAL_ANSWER_PROMPT
from shared.transcripts_client import TranscriptsClient
from shared.util import truncate, with_timeout

from .buckets import BucketFetcher
from .categorizer import static_categories
from .comms_search import CommsSearcher, build_timeline
from .conversation import ConversationStore
from .enums import TAG_LABELS, Operation
from .intent_router import IntentRouter
from .keywords import extract_partnership_from_text
from .models import CandidateBrand, PartnershipRecord, PipelineConfig, SessionResolution
from .pitch_generator import PitchGenerator
from .scoring import score_candidates
from .selection import diversify, select_pitch_pair, target_size_for
from .session_manager import SessionManager, clean_title

# Configure logging
logging.getLogger("azure").setLevel(logging.WARNING)
logging.getLogger("azure.cosmos").setLevel(logging.WARNING)
logging.basicConfig(
    level=os.environ.get("LOGLEVEL", "INFO").upper(),
    format="[%(asctime)s] [%(name)s] %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
    force=True,
)

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = (
    "I can find and rank brands for a production, show recent meetings and "
    "emails about a brand, or write pitches for brands you name."
)


def soft_error(code: str, message: str) -> Dict[str, str]:
    return {"code": code, "message": message}


def empty_response(operation: Operation) -> Dict[str, Any]:
    return {
        "reply": "",
        "operation": operation.value,
        "project": None,
        "brands": [],
        "pitches": [],
        "communications": None,
    }


def format_shortlist(title: str, brands: List[CandidateBrand], pitched: List[CandidateBrand]) -> str:
    lines = [f"Here are {len(brands)} brands for {title}:"]
    for i, brand in enumerate(brands, start=1):
        label = TAG_LABELS[brand.tags[0]] if brand.tags else "Brand"
        line = f"{i}. {brand.name} ({label})"
        if brand.reason:
            line += f" - {brand.reason}"
        lines.append(line)
    if pitched:
        lines.append("")
        lines.append("Pitches:")
        for brand in pitched:
            pitch = brand.pitch or {}
            lines.append(f"Brand: {brand.name}")
            lines.append(f"Integration idea: {pitch.get('integration_idea', '')}")
            lines.append(f"Why it works: {pitch.get('why_it_works', '')}")
            lines.append(f"Insight: {pitch.get('insight', '')}")
    return "\n".join(lines)


class BrandOrchestrator:
    """
    Runs one assistant turn end to end.

    Collaborators default to the configured production clients; tests pass
    fakes for any of them.
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        crm=None,
        transcripts=None,
        mail=None,
        llm: Optional[LLMClient] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.config = config or PipelineConfig.from_env()
        self.store = store if store is not None else get_kv_store()
        self.crm = crm if crm is not None else CrmClient()
        self.transcripts = transcripts if transcripts is not None else TranscriptsClient()
        self.mail = mail if mail is not None else MailClient()
        self.llm = llm if llm is not None else LLMClient()

        self.sessions = SessionManager(self.store, self.crm, self.llm, self.config)
        self.conversations = ConversationStore(self.store, self.config.history_max_chars)
        self.router = IntentRouter(self.llm, self.config)
        self.comms_searcher = CommsSearcher(self.transcripts, self.mail, self.llm, self.config)
        self.fetcher = BucketFetcher(self.crm, self.comms_searcher, self.llm, self.store, self.config)
        self.pitcher = PitchGenerator(self.llm, self.config)

        logger.info(
            f"[BrandOrchestrator] Initialized (crm: {self.crm.available}, "
            f"llm: {self.llm.available})"
        )

    @traceable(run_type="chain", name="brand_assistant_turn")
    async def handle_turn(self, request: Dict[str, Any]) -> Dict[str, Any]:
        message = (request.get("userMessage") or "").strip()
        if not message:
            raise MissingRequiredFieldError("userMessage")
        session_id = request.get("sessionId") or str(uuid.uuid4())
        run_id = request.get("runId") or str(uuid.uuid4())
        project_id = request.get("projectId")
        start_time = time.time()

        progress = ProgressLog(self.store, session_id, run_id)
        await progress.init(message=truncate(message, 200, keep="start"))

        response: Optional[Dict[str, Any]] = None
        try:
            await progress.emit("Loading project context", ProgressSteps.SESSION)
            history = await self.conversations.load(session_id, project_id)
            resolution = await self.sessions.resolve_turn(
                session_id, message, history, request.get("knownProjectName")
            )
            if resolution.project_name:
                await progress.emit(f"Project: {resolution.project_name}", ProgressSteps.SESSION)

            await progress.emit("Understanding your request", ProgressSteps.ROUTING)
            last_project = resolution.project_name or (
                resolution.partnership.title if resolution.partnership else None
            )
            intent = await self.router.route(message, history, last_project)

            response = await self._dispatch(
                intent.operation, intent.args, message, history, session_id, resolution, progress
            )

            project = response.get("project") or {}
            await self.conversations.append(
                session_id,
                project_id,
                history,
                message,
                response["reply"],
                project.get("title"),
            )
        finally:
            await progress.done(
                operation=response["operation"] if response else None,
                failed=response is None,
            )

        duration_ms = int((time.time() - start_time) * 1000)
        log_event(
            "turn_completed",
            operation=response["operation"],
            session_id=session_id,
            brand_count=len(response["brands"]),
            duration_ms=duration_ms,
            soft_error=(response.get("error") or {}).get("code"),
        )
        logger.info(
            f"[BrandOrchestrator] {response['operation']} completed in {duration_ms}ms"
        )
        return response

    async def _dispatch(
        self,
        operation: Operation,
        args: Dict[str, Any],
        message: str,
        history: str,
        session_id: str,
        resolution: SessionResolution,
        progress: ProgressSink,
    ) -> Dict[str, Any]:
        if operation in (Operation.FIND_BRANDS, Operation.QUICK_MATCH):
            partnership = await self._project_for(
                session_id, resolution, args.get("search_term"), message
            )
            if partnership is None:
                response = empty_response(operation)
                response["reply"] = (
                    "Which production should I find brands for? Share a title or a synopsis."
                )
                response["error"] = soft_error(
                    "no_project", "No production could be resolved for this request."
                )
                return response
            return await self.find_brands(
                partnership, progress, quick=operation == Operation.QUICK_MATCH
            )

        if operation == Operation.GET_BRAND_ACTIVITY:
            return await self.get_brand_activity(args.get("brand_name", ""), resolution, progress)

        if operation == Operation.CREATE_PITCHES_FOR_BRANDS:
            return await self.create_pitches_for_brands(
                args.get("brand_names") or [], resolution, progress
            )

        return await self.answer_general(message, history, resolution, progress)

    async def _project_for(
        self,
        session_id: str,
        resolution: SessionResolution,
        search_term: Optional[str],
        message: str,
    ) -> Optional[PartnershipRecord]:
        """
        The production to run against: a title the user named that differs from
        the resolved project supersedes it; otherwise the resolved one, else the
        routed search term.
        """
        partnership = resolution.partnership
        title = clean_title(search_term)
        if title and title.strip().lower() == message.strip().lower():
            title = None

        if partnership is not None and partnership.title:
            named = title and title.lower() in message.lower()
            if not named or title.lower() == partnership.title.lower():
                return partnership
            logger.info(
                f"[BrandOrchestrator] Switching project from '{partnership.title}' to '{title}'"
            )
            return await self.sessions.resolve_from_crm(
                session_id, title, extracted=extract_partnership_from_text(message)
            )

        if title:
            extracted = partnership or extract_partnership_from_text(message)
            return await self.sessions.resolve_from_crm(session_id, title, extracted=extracted)

        # untitled details (e.g. a synopsis) are still enough to search with
        if partnership is not None and (partnership.synopsis or partnership.genre_or_vibe):
            return partnership
        return None

    @traceable(run_type="chain", name="find_brands")
    async def find_brands(
        self,
        partnership: PartnershipRecord,
        progress: Optional[ProgressSink] = None,
        quick: bool = False,
    ) -> Dict[str, Any]:
        """
        FindBrands (full pipeline) or QuickMatch (no communications search,
        no wildcards, static categories, templated pitches, short list).
        """
        progress = progress or ProgressSink()
        operation = Operation.QUICK_MATCH if quick else Operation.FIND_BRANDS

        fetched = await self.fetcher.fetch_buckets(
            partnership,
            progress,
            include_wildcards=not quick,
            include_comms=not quick,
            use_llm_categories=not quick,
        )

        await progress.emit(f"Ranking {len(fetched.brands)} brands", ProgressSteps.SCORING)
        scored = score_candidates(
            fetched.brands, partnership, fetched.categories, fetched.communications, self.config
        )
        target = self.config.quick_match_size if quick else target_size_for(partnership, self.config)
        shortlist = diversify(scored, target, self.config.bucket_quotas)

        pitch_result = await self.pitcher.generate_pitches(
            select_pitch_pair(shortlist),
            partnership,
            fetched.communications,
            progress,
            use_llm=not quick,
        )
        pitched = {c.id.value: c for c in pitch_result.candidates}
        brands = [pitched.get(c.id.value, c) for c in shortlist]

        response = empty_response(operation)
        response["project"] = partnership.to_dict()
        response["brands"] = [b.to_dict() for b in brands]
        response["pitches"] = [c.pitch for c in pitch_result.candidates]
        response["communications"] = fetched.communications.to_dict()
        if brands:
            response["reply"] = format_shortlist(
                partnership.title or "this production", brands, pitch_result.candidates
            )
        else:
            response["reply"] = f"I couldn't find any brands for {partnership.title or 'this production'}."
            response["error"] = soft_error("no_brands", "No candidate brands were found.")
        return response

    async def get_brand_activity(
        self,
        brand_name: str,
        resolution: Optional[SessionResolution] = None,
        progress: Optional[ProgressSink] = None,
    ) -> Dict[str, Any]:
        response = empty_response(Operation.GET_BRAND_ACTIVITY)
        if resolution is not None and resolution.partnership is not None:
            response["project"] = resolution.partnership.to_dict()
        if not brand_name:
            response["reply"] = "Which brand should I look up?"
            response["error"] = soft_error("no_brand_name", "No brand name was given.")
            return response

        comms = await self.comms_searcher.search_brand_activity(brand_name, progress)
        timeline = build_timeline(comms)
        response["communications"] = {**comms.to_dict(), "timeline": timeline}

        if not timeline:
            response["reply"] = f"I found no recent meetings or emails mentioning {brand_name}."
            return response

        lines = [f"Recent activity for {brand_name}:"]
        for record in timeline:
            when = (record.get("timestamp") or "")[:10] or "undated"
            kind = "Meeting" if record["type"] == "meeting" else "Email"
            lines.append(f"- {when} {kind}: {record['title']}")
        response["reply"] = "\n".join(lines)
        return response

    @traceable(run_type="chain", name="create_pitches_for_brands")
    async def create_pitches_for_brands(
        self,
        brand_names: List[str],
        resolution: Optional[SessionResolution] = None,
        progress: Optional[ProgressSink] = None,
    ) -> Dict[str, Any]:
        progress = progress or ProgressSink()
        response = empty_response(Operation.CREATE_PITCHES_FOR_BRANDS)
        names = [n.strip() for n in brand_names if n and n.strip()]
        if not names:
            response["reply"] = "Which brands should I write pitches for?"
            response["error"] = soft_error("no_brands", "No brand names were given.")
            return response

        partnership = resolution.partnership if resolution else None
        if partnership is not None:
            response["project"] = partnership.to_dict()
        partnership = partnership or PartnershipRecord()

        await progress.emit(f"Looking up {', '.join(names)}", ProgressSteps.BUCKETS)
        brands, comms = await self._named_brands_with_evidence(names)

        scored = score_candidates(
            brands, partnership, static_categories(partnership), comms, self.config
        )
        pitch_result = await self.pitcher.generate_pitches(scored, partnership, comms, progress)

        response["brands"] = [c.to_dict() for c in pitch_result.candidates]
        response["pitches"] = [c.pitch for c in pitch_result.candidates]
        response["communications"] = comms.to_dict()
        response["reply"] = format_shortlist(
            partnership.title or "this production", pitch_result.candidates, pitch_result.candidates
        )
        return response

    async def _named_brands_with_evidence(self, names: List[str]):
        brands = await self.fetcher.fetch_named_brands(names)
        comms = await self.comms_searcher.search_mentions(names)
        return brands, comms

    async def answer_general(
        self,
        message: str,
        history: str,
        resolution: Optional[SessionResolution] = None,
        progress: Optional[ProgressSink] = None,
    ) -> Dict[str, Any]:
        progress = progress or ProgressSink()
        response = empty_response(Operation.ANSWER_GENERAL)
        partnership = resolution.partnership if resolution else None
        if partnership is not None:
            response["project"] = partnership.to_dict()

        reply = ""
        if self.llm.available:
            await progress.emit("Writing an answer", ProgressSteps.ANSWER)
            prompt = GENERAL_ANSWER_PROMPT.format(
                project_context=partnership.summary() if partnership else "none",
                conversation=truncate(history, 3000, keep="end") or "none",
                message=message,
            )
            reply = await with_timeout(
                self.llm.complete(prompt, temperature=0.5, max_tokens=600),
                self.config.llm_timeout_seconds,
                "",
                "general answer",
            )

        if not reply:
            log_event("general_answer_fallback", llm_available=self.llm.available)
            reply = FALLBACK_ANSWER
            if partnership is not None and partnership.title:
                reply += f" The current project is {partnership.title}."
        response["reply"] = reply
        return response

    async def refresh_partnership(self, session_id: str, project_name: str) -> Dict[str, Any]:
        """Re-read the project from the CRM and persist it for the session."""
        if not session_id:
            raise MissingRequiredFieldError("sessionId")
        if not project_name or not project_name.strip():
            raise MissingRequiredFieldError("projectName")

        resolution = await self.sessions.refresh_from_crm(session_id, project_name)
        logger.info(f"[BrandOrchestrator] Refreshed project '{resolution.project_name}'")
        return {
            "sessionId": session_id,
            "projectName": resolution.project_name,
            "project": resolution.partnership.to_dict() if resolution.partnership else None,
            "state": resolution.state.value,
        }
