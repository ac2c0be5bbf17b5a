"""
Session Manager Module

Decides, per user turn, which production ("project") the conversation is
about, and persists that decision in the KV store.

States:
- NoSession: nothing stored, or the stored context expired
- ActiveSession: a stored project is carried into this turn
- SupersededSession: the message introduced a new project, replacing any
  stored one
"""

import re
import logging
from typing import Optional

from shared import config as settings
from shared.llm import LLMClient
from shared.prompts import NEW_PROJECT_PROMPT
from shared.util import utc_now_iso, with_timeout

from .conversation import find_last_project_marker
from .enums import SessionState
from .keywords import extract_partnership_from_text
from .models import PartnershipRecord, PipelineConfig, SessionContext, SessionResolution
from .normalization import merge_partnership, normalize, split_list

logger = logging.getLogger(__name__)

# Labelled production details: always a new-project signal
STRONG_SIGNALS = [
    re.compile(r"^\s*synopsis\s*:", re.I | re.M),
    re.compile(r"^\s*(?:starring|cast)\s*:", re.I | re.M),
    re.compile(r"^\s*(?:production|project|title)\s*:\s*[\"“']?(?P<title>.+?)[\"”']?\s*$", re.I | re.M),
    re.compile(r"find brands for\s+[\"“'](?P<title>[^\"”']+)[\"”']", re.I),
]

FOLLOW_UP_PATTERNS = [
    re.compile(r"^(?:how about|what about|also|and|more|try|show me|get me|find me)\b", re.I),
    re.compile(r"\b(?:more|additional|other|different) brands\b", re.I),
    re.compile(r"\bfor (?:this|it|that)(?: one| project| production| show| film| movie)?\s*[?.!]*\s*$", re.I),
]

# "<verb> ... for <Title>"
VERB_FOR_TITLE = re.compile(
    r"^\s*(?:generate|create|find|get|show|suggest|quick match|brand integrations?)\b.*?\bfor\s+(?P<title>.+?)\s*[?.!]*\s*$",
    re.I | re.S,
)

VAGUE_TITLES = {
    "this", "that", "it", "me", "us", "them", "this one", "this project",
    "this production", "this show", "this film", "this movie", "the project",
    "the production", "the show", "the film", "the movie",
}
DESCRIPTIVE_PREFIXES = ("a ", "an ", "some ", "my ", "our ", "any ")


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def clean_title(raw: Optional[str]) -> Optional[str]:
    """A usable project title, or None for vague or descriptive captures."""
    if not raw:
        return None
    title = raw.strip().strip("\"'“”‘’").strip()
    lowered = title.lower()
    if not title or lowered in VAGUE_TITLES or lowered.startswith(DESCRIPTIVE_PREFIXES):
        return None
    return title[:120]


class SessionManager:
    """
    Manages the project context of a conversation.

    Responsibilities:
    - Load/save SessionContext with a TTL
    - Detect whether a message starts a new project
    - Recover the project from the history marker when the context is gone
    - Resolve projects from the CRM and persist right after resolution
    """

    def __init__(
        self,
        store,
        crm,
        llm: Optional[LLMClient] = None,
        config: Optional[PipelineConfig] = None,
        ttl_seconds: int = settings.SESSION_TTL_SECONDS,
    ):
        self.store = store
        self.crm = crm
        self.llm = llm
        self.config = config or PipelineConfig()
        self.ttl_seconds = ttl_seconds

    async def load(self, session_id: str) -> Optional[SessionContext]:
        if not session_id:
            logger.warning("[SessionManager] No session id provided")
            return None
        try:
            data = await self.store.get(session_key(session_id))
        except Exception as e:
            logger.error(f"[SessionManager] Error loading session {session_id}: {e}")
            return None
        context = SessionContext.from_dict(data) if isinstance(data, dict) else None
        if context:
            logger.info(f"[SessionManager] Loaded session {session_id}, project: {context.project_name}")
        return context

    async def save(
        self,
        session_id: str,
        partnership: PartnershipRecord,
        established_at: Optional[str] = None,
    ) -> bool:
        if not session_id or not partnership.title:
            logger.warning("[SessionManager] Refusing to save a session without id or title")
            return False
        now = utc_now_iso()
        context = SessionContext(
            project_name=partnership.title,
            partnership=partnership,
            established_at=established_at or now,
            last_accessed_at=now,
        )
        try:
            await self.store.set(session_key(session_id), context.to_dict(), self.ttl_seconds)
            logger.info(f"[SessionManager] Saved session {session_id}, project: {partnership.title}")
            return True
        except Exception as e:
            logger.error(f"[SessionManager] Error saving session {session_id}: {e}")
            return False

    async def clear(self, session_id: str):
        try:
            await self.store.delete(session_key(session_id))
            logger.info(f"[SessionManager] Cleared session {session_id}")
        except Exception as e:
            logger.error(f"[SessionManager] Error clearing session {session_id}: {e}")

    async def _llm_extract(self, message: str) -> Optional[dict]:
        if self.llm is None or not self.llm.available:
            return None
        parsed = await with_timeout(
            self.llm.complete_json(
                NEW_PROJECT_PROMPT.format(message=message[:1000]),
                temperature=0.1,
                max_tokens=250,
            ),
            self.config.llm_timeout_seconds,
            None,
            "new project extraction",
        )
        return parsed if isinstance(parsed, dict) else None

    async def detect_new_project(self, message: str) -> Optional[PartnershipRecord]:
        """
        Returns the extracted project (with a title) when the message starts a
        new project, else None.
        """
        text = (message or "").strip()
        if not text:
            return None

        extracted = extract_partnership_from_text(text)
        strong_title = None
        strong = False
        for pattern in STRONG_SIGNALS:
            match = pattern.search(text)
            if match:
                strong = True
                if "title" in pattern.groupindex and not strong_title:
                    strong_title = clean_title(match.group("title"))

        if not strong:
            # a concrete "<verb> ... for <Title>" wins over follow-up phrasing
            verb_match = VERB_FOR_TITLE.search(text)
            strong_title = clean_title(verb_match.group("title")) if verb_match else None
            if strong_title is None:
                if any(p.search(text) for p in FOLLOW_UP_PATTERNS):
                    logger.info("[SessionManager] Follow-up message, not a new project")
                    return None
                if not verb_match:
                    return None

        llm_data = await self._llm_extract(text)
        title = strong_title
        if llm_data is not None:
            if llm_data.get("isNewProject") is False and not strong:
                logger.info("[SessionManager] Model says follow-up, keeping context")
                return None
            llm_title = clean_title(llm_data.get("title") if llm_data.get("title") != "null" else None)
            title = llm_title or title
            llm_record = PartnershipRecord(
                synopsis=_clean_value(llm_data.get("synopsis")),
                genre_or_vibe=_clean_value(llm_data.get("genre")),
                location=_clean_value(llm_data.get("location")),
                cast=split_list(_clean_value(llm_data.get("cast"))),
            )
            extracted = merge_partnership(carried=extracted, extracted=llm_record)

        if not title:
            logger.info("[SessionManager] New-project signal without a usable title")
            return None

        extracted.title = title
        logger.info(f"[SessionManager] Detected new project: {title}")
        return extracted

    async def resolve_from_crm(
        self,
        session_id: str,
        title: str,
        extracted: Optional[PartnershipRecord] = None,
        carried: Optional[PartnershipRecord] = None,
    ) -> PartnershipRecord:
        """CRM lookup by title, merged with carried and extracted values, persisted immediately."""
        record = await with_timeout(
            self.crm.get_partnership_by_title(title),
            self.config.call_timeout_seconds,
            None,
            f"partnership lookup '{title}'",
        )
        crm_record = normalize(record) if record else None
        if crm_record is None:
            logger.info(f"[SessionManager] '{title}' not in CRM, using extracted details")

        merged = merge_partnership(carried=carried, crm=crm_record, extracted=extracted)
        merged.title = (crm_record.title if crm_record and crm_record.title else None) or title
        await self.save(session_id, merged)
        return merged

    async def resolve_turn(
        self,
        session_id: str,
        message: str,
        history: str = "",
        known_project: Optional[str] = None,
    ) -> SessionResolution:
        context = await self.load(session_id)

        new_project = await self.detect_new_project(message)
        if new_project is not None:
            partnership = await self.resolve_from_crm(session_id, new_project.title, extracted=new_project)
            return SessionResolution(
                state=SessionState.SUPERSEDED_SESSION,
                partnership=partnership,
                project_name=partnership.title,
                looked_up_crm=True,
            )

        if context is None:
            recovered = find_last_project_marker(history) or clean_title(known_project)
            if recovered:
                logger.info(f"[SessionManager] Recovering project '{recovered}'")
                partnership = await self.resolve_from_crm(
                    session_id, recovered, extracted=extract_partnership_from_text(message)
                )
                return SessionResolution(
                    state=SessionState.ACTIVE_SESSION,
                    partnership=partnership,
                    project_name=partnership.title,
                    looked_up_crm=True,
                )
            extracted = extract_partnership_from_text(message)
            return SessionResolution(
                state=SessionState.NO_SESSION,
                partnership=None if extracted.is_empty() else extracted,
            )

        # keep the stored project; saving again extends its TTL
        await self.save(session_id, context.partnership, established_at=context.established_at)
        return SessionResolution(
            state=SessionState.ACTIVE_SESSION,
            partnership=context.partnership,
            project_name=context.project_name,
        )

    async def refresh_from_crm(self, session_id: str, project_name: str) -> SessionResolution:
        """Re-read a project from the CRM, keeping stored values only where the CRM has none."""
        context = await self.load(session_id)
        carried = (
            context.partnership
            if context and context.project_name.lower() == project_name.strip().lower()
            else None
        )
        partnership = await self.resolve_from_crm(session_id, project_name.strip(), carried=carried)
        return SessionResolution(
            state=SessionState.ACTIVE_SESSION,
            partnership=partnership,
            project_name=partnership.title,
            looked_up_crm=True,
        )


def _clean_value(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return None if not text or text.lower() == "null" else text
