"""
Conversation history kept as plain text in the KV store.

Assistant turns that ran against a project end with a ``[PRODUCTION:<title>]``
marker line, which lets the session manager recover the project when the
session context has expired.
"""

import re
import logging
from typing import Optional

from shared import config as settings
from shared.util import truncate

logger = logging.getLogger(__name__)

PROJECT_MARKER = re.compile(r"\[PRODUCTION:\s*([^\]\n]+?)\s*\]")


def project_marker(title: str) -> str:
    return f"[PRODUCTION:{title}]"


def find_last_project_marker(history: Optional[str]) -> Optional[str]:
    """Title from the most recent project marker in the history, if any."""
    if not history:
        return None
    matches = PROJECT_MARKER.findall(history)
    return matches[-1].strip() if matches else None


def history_key(session_id: str, project_id: Optional[str]) -> str:
    return f"history:{session_id}:{project_id or 'default'}"


class ConversationStore:
    def __init__(
        self,
        store,
        max_chars: int = 10000,
        ttl_seconds: int = settings.HISTORY_TTL_SECONDS,
    ):
        self.store = store
        self.max_chars = max_chars
        self.ttl_seconds = ttl_seconds

    async def load(self, session_id: str, project_id: Optional[str] = None) -> str:
        try:
            history = await self.store.get(history_key(session_id, project_id))
            return history if isinstance(history, str) else ""
        except Exception as e:
            logger.error(f"[ConversationStore] Failed to load history for {session_id}: {e}")
            return ""

    async def append(
        self,
        session_id: str,
        project_id: Optional[str],
        history: str,
        user_message: str,
        reply: str,
        project_title: Optional[str] = None,
    ) -> str:
        """Append one turn and keep only the most recent ``max_chars`` characters."""
        turn = f"User: {user_message}\nAssistant: {reply}"
        if project_title:
            turn += f"\n{project_marker(project_title)}"
        updated = truncate(f"{history}\n\n{turn}".strip(), self.max_chars, keep="end")
        try:
            await self.store.set(history_key(session_id, project_id), updated, self.ttl_seconds)
        except Exception as e:
            logger.error(f"[ConversationStore] Failed to save history for {session_id}: {e}")
        return updated
