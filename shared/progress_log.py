import time
import asyncio
import logging
from typing import Any, Dict, Optional

from shared import config
from shared.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

MAX_PROGRESS_ENTRIES = 100


def progress_key(session_id: str, run_id: str) -> str:
    return f"progress:{session_id}:{run_id}"


class ProgressSink:
    """Side-channel for user-facing progress narration. The default sink drops everything."""

    async def emit(self, text: str, step_type: str = "info", data: Optional[Dict[str, Any]] = None):
        return None


class ProgressLog(ProgressSink):
    """
    Append-only progress log for one (session, run) pair, kept in the KV store
    so the polling endpoint can read it while the turn is still running.

    Write failures are logged and ignored; progress never influences results.
    """

    def __init__(
        self,
        store: KeyValueStore,
        session_id: str,
        run_id: str,
        ttl_seconds: int = config.PROGRESS_TTL_SECONDS,
        max_entries: int = MAX_PROGRESS_ENTRIES,
    ):
        self.store = store
        self.session_id = session_id
        self.run_id = run_id
        self.key = progress_key(session_id, run_id)
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._started = time.time()
        # concurrent branches append through read-modify-write
        self._lock = asyncio.Lock()

    async def _load(self) -> Dict[str, Any]:
        state = await self.store.get(self.key)
        if not isinstance(state, dict):
            state = {"steps": [], "done": False, "meta": {}}
        state.setdefault("steps", [])
        state.setdefault("meta", {})
        state.setdefault("done", False)
        return state

    async def init(self, **meta):
        try:
            state = {
                "steps": [],
                "done": False,
                "meta": {
                    **meta,
                    "sessionId": self.session_id,
                    "runId": self.run_id,
                    "startedAt": self._started,
                },
            }
            await self.store.set(self.key, state, self.ttl_seconds)
        except Exception as e:
            logger.warning(f"[ProgressLog] Failed to init {self.key}: {e}")

    async def emit(self, text: str, step_type: str = "info", data: Optional[Dict[str, Any]] = None):
        try:
            async with self._lock:
                state = await self._load()
                now = time.time()
                entry = {
                    "ts": now,
                    "elapsedMs": int((now - self._started) * 1000),
                    "type": step_type,
                    "text": text,
                }
                if data:
                    entry["data"] = data
                steps = state["steps"] + [entry]
                # oldest entries are evicted
                state["steps"] = steps[-self.max_entries:]
                await self.store.set(self.key, state, self.ttl_seconds)
        except Exception as e:
            logger.warning(f"[ProgressLog] Failed to append to {self.key}: {e}")

    async def done(self, **meta):
        try:
            state = await self._load()
            state["done"] = True
            state["meta"].update(meta)
            state["meta"]["finishedAt"] = time.time()
            await self.store.set(self.key, state, self.ttl_seconds)
        except Exception as e:
            logger.warning(f"[ProgressLog] Failed to close {self.key}: {e}")


async def read_progress(store: KeyValueStore, session_id: str, run_id: str) -> Dict[str, Any]:
    """State for the polling endpoint; unknown runs read as empty and not done."""
    state = await store.get(progress_key(session_id, run_id))
    if not isinstance(state, dict):
        return {"steps": [], "done": False, "meta": {}}
    return {
        "steps": state.get("steps", []),
        "done": bool(state.get("done")),
        "meta": state.get("meta", {}),
    }


class ProgressSteps:
    """Constants for standardized progress step types."""

    SESSION = "session"
    ROUTING = "routing"
    CATEGORIES = "categories"
    BUCKETS = "buckets"
    COMMS = "comms"
    SCORING = "scoring"
    PITCHES = "pitches"
    ANSWER = "answer"


STEP_MESSAGES = {
    ProgressSteps.SESSION: "Loading project context...",
    ProgressSteps.ROUTING: "Understanding your request...",
    ProgressSteps.CATEGORIES: "Working out which brand categories fit...",
    ProgressSteps.BUCKETS: "Searching the brand database...",
    ProgressSteps.COMMS: "Checking recent meetings and emails...",
    ProgressSteps.SCORING: "Ranking brands...",
    ProgressSteps.PITCHES: "Drafting pitches...",
    ProgressSteps.ANSWER: "Writing an answer...",
}
