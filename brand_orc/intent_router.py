"""
Intent Routing Component

Classifies a user message into one orchestrator operation with a
function-calling model, then applies deterministic clean-up the model is not
trusted to do alone.
"""

import re
import logging
from typing import Any, Dict, List, Optional

from langsmith import traceable

from shared.llm import LLMClient
from shared.prompts import ROUTER_SYSTEM_PROMPT
from shared.util import truncate, with_timeout

from .enums import Operation
from .models import PipelineConfig, RoutedIntent

logger = logging.getLogger(__name__)

ROUTER_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "find_brands",
            "description": "Find and rank brands for a production and draft pitches.",
            "parameters": {
                "type": "object",
                "properties": {
                    "search_term": {
                        "type": "string",
                        "description": "Production title or description to find brands for.",
                    }
                },
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "quick_match",
            "description": "Return a fast, short list of brand matches without deep research.",
            "parameters": {
                "type": "object",
                "properties": {"search_term": {"type": "string"}},
                "required": [],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "get_brand_activity",
            "description": "Show recent meetings and emails that mention a brand.",
            "parameters": {
                "type": "object",
                "properties": {"brand_name": {"type": "string"}},
                "required": ["brand_name"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "create_pitches_for_brands",
            "description": "Write pitches for specific brands the user named.",
            "parameters": {
                "type": "object",
                "properties": {
                    "brand_names": {"type": "array", "items": {"type": "string"}}
                },
                "required": ["brand_names"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "answer_general_question",
            "description": "Answer anything that is not one of the other operations.",
            "parameters": {"type": "object", "properties": {}},
        },
    },
]

TOOL_OPERATIONS = {
    "find_brands": Operation.FIND_BRANDS,
    "quick_match": Operation.QUICK_MATCH,
    "get_brand_activity": Operation.GET_BRAND_ACTIVITY,
    "create_pitches_for_brands": Operation.CREATE_PITCHES_FOR_BRANDS,
    "answer_general_question": Operation.ANSWER_GENERAL,
}

VAGUE_SEARCH_TERMS = {"this", "it", "that", "brands", "more", "the project", "the production"}

# matched anywhere in the term ("more brands for this project")
VAGUE_SEARCH_PHRASES = (
    "more brands", "additional brands", "other brands", "more options",
    "this project", "this production", "this show", "this film", "this movie",
    "current project", "same project",
)


def is_vague_term(term: str) -> bool:
    lowered = (term or "").lower().strip(" .?!")
    if not lowered or lowered in VAGUE_SEARCH_TERMS:
        return True
    return any(phrase in lowered for phrase in VAGUE_SEARCH_PHRASES)


BRAND_ARG_ALIASES = ["brand_name", "search_query", "query", "brand", "name"]


def _split_names(value: Any) -> List[str]:
    if isinstance(value, list):
        items = [str(v) for v in value]
    elif isinstance(value, str):
        items = re.split(r",|;|\band\b|&", value)
    else:
        return []
    return [i.strip() for i in items if i and i.strip()]


def postprocess(
    operation: Operation,
    args: Dict[str, Any],
    message: str,
    last_project_context: Optional[str],
) -> RoutedIntent:
    """Deterministic argument clean-up for a classified operation."""
    args = dict(args or {})

    if operation in (Operation.FIND_BRANDS, Operation.QUICK_MATCH):
        term = str(args.get("search_term") or args.get("query") or "").strip()
        if is_vague_term(term):
            term = last_project_context or message
        return RoutedIntent(operation, {"search_term": term})

    if operation == Operation.GET_BRAND_ACTIVITY:
        brand = next((args[k] for k in BRAND_ARG_ALIASES if args.get(k)), None)
        if not brand:
            return RoutedIntent(Operation.ANSWER_GENERAL, {})
        return RoutedIntent(operation, {"brand_name": str(brand).strip()})

    if operation == Operation.CREATE_PITCHES_FOR_BRANDS:
        names = _split_names(args.get("brand_names") or args.get("brands") or args.get("brand_name"))
        if not names:
            return RoutedIntent(Operation.ANSWER_GENERAL, {})
        return RoutedIntent(operation, {"brand_names": names[:5]})

    return RoutedIntent(Operation.ANSWER_GENERAL, {})


class IntentRouter:
    """
    Routes user messages to operations.

    Falls back to AnswerGeneral whenever the classifier is unavailable, fails
    or returns something unusable. Never raises.
    """

    def __init__(self, llm: Optional[LLMClient], config: Optional[PipelineConfig] = None):
        self.llm = llm
        self.config = config or PipelineConfig()
        logger.info("[IntentRouter] Initialized")

    @traceable(run_type="chain", name="route_intent")
    async def route(
        self,
        message: str,
        conversation_context: str = "",
        last_project_context: Optional[str] = None,
    ) -> RoutedIntent:
        if self.llm is None or not self.llm.available or not (message or "").strip():
            logger.info("[IntentRouter] Classifier unavailable, defaulting to AnswerGeneral")
            return RoutedIntent(Operation.ANSWER_GENERAL, {})

        system = ROUTER_SYSTEM_PROMPT.format(
            project_context=last_project_context or "none",
            conversation=truncate(conversation_context, 2000, keep="end") or "none",
        )
        try:
            selection = await with_timeout(
                self.llm.select_tool(system, message, ROUTER_TOOLS),
                self.config.llm_timeout_seconds,
                None,
                "intent routing",
            )
            if not selection:
                return RoutedIntent(Operation.ANSWER_GENERAL, {})

            name, args = selection
            operation = TOOL_OPERATIONS.get(name)
            if operation is None:
                logger.warning(f"[IntentRouter] Unknown tool '{name}', defaulting to AnswerGeneral")
                return RoutedIntent(Operation.ANSWER_GENERAL, {})
            if not isinstance(args, dict):
                args = {}

            intent = postprocess(operation, args, message, last_project_context)
            logger.info(f"[IntentRouter] Routed to {intent.operation.value} with {intent.args}")
            return intent
        except Exception as e:
            logger.error(f"[IntentRouter] Routing failed: {e}")
            return RoutedIntent(Operation.ANSWER_GENERAL, {})
