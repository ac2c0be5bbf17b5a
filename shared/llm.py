"""
Thin LangChain wrapper around the chat model used for categorization, term
extraction, wildcard proposals, routing and pitch drafting.

Every call site treats the model as unreliable: ``complete`` returns an empty
string on failure and ``select_tool`` returns None, so callers only need a
parse-failure fallback.
"""

import re
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from langsmith import traceable
from langchain_openai import AzureChatOpenAI, ChatOpenAI
from langchain_core.messages import HumanMessage, SystemMessage

from shared import config

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a precise assistant for an entertainment brand-partnership agency."


def extract_json(text: Any) -> Optional[Any]:
    """
    Parse JSON out of model output.

    Tries a fenced ```json block, then the outermost braces, then the raw text.
    Returns None when nothing parses.
    """
    if text is None:
        return None
    if isinstance(text, (dict, list)):
        return text
    raw = str(text).strip()
    if not raw:
        return None

    fence = re.search(r"```(?:json)?\s*([\s\S]*?)```", raw, re.IGNORECASE)
    if fence:
        try:
            return json.loads(fence.group(1))
        except json.JSONDecodeError:
            pass

    first, last = raw.find("{"), raw.rfind("}")
    if first != -1 and last > first:
        try:
            return json.loads(raw[first : last + 1])
        except json.JSONDecodeError:
            pass

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None


class LLMClient:
    """Chat completions through ``ChatOpenAI`` or an Azure OpenAI deployment."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        azure_endpoint: Optional[str] = None,
        azure_api_key: Optional[str] = None,
        timeout: float = 30,
    ):
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.model = model or config.OPENAI_MODEL
        self.azure_endpoint = (
            azure_endpoint if azure_endpoint is not None else config.AZURE_OPENAI_ENDPOINT
        )
        self.azure_api_key = (
            azure_api_key if azure_api_key is not None else config.AZURE_OPENAI_API_KEY
        )
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return bool(self.api_key or (self.azure_endpoint and self.azure_api_key))

    def _chat_model(self, temperature: float, max_tokens: int):
        if self.azure_endpoint and self.azure_api_key:
            return AzureChatOpenAI(
                azure_endpoint=self.azure_endpoint,
                api_key=self.azure_api_key,
                azure_deployment=config.AZURE_OPENAI_CHATGPT_DEPLOYMENT,
                api_version=config.AZURE_OPENAI_API_VERSION,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.timeout,
                max_retries=1,
            )
        return ChatOpenAI(
            api_key=self.api_key,
            model=self.model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=self.timeout,
            max_retries=1,
        )

    @traceable(run_type="llm", name="llm_complete")
    async def complete(
        self,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 500,
        json_mode: bool = False,
        system: str = DEFAULT_SYSTEM_PROMPT,
    ) -> str:
        if not self.available:
            logger.info("[LLMClient] No API key configured, skipping completion")
            return ""

        model = self._chat_model(temperature, max_tokens)
        if json_mode:
            model = model.bind(response_format={"type": "json_object"})

        try:
            response = await model.ainvoke(
                [SystemMessage(content=system), HumanMessage(content=prompt)]
            )
            return (response.content or "").strip()
        except Exception as e:
            logger.error(f"[LLMClient] Completion failed: {e}")
            return ""

    async def complete_json(self, prompt: str, **kwargs) -> Optional[Any]:
        text = await self.complete(prompt, json_mode=True, **kwargs)
        parsed = extract_json(text)
        if parsed is None and text:
            logger.warning(f"[LLMClient] Could not parse JSON from: {text[:120]}...")
        return parsed

    @traceable(run_type="llm", name="llm_select_tool")
    async def select_tool(
        self,
        system: str,
        message: str,
        tools: List[Dict[str, Any]],
        temperature: float = 0.0,
    ) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Function-calling classification. Returns ``(tool_name, args)`` for the
        first tool call, or None when the model answers without one or fails.
        """
        if not self.available:
            return None

        try:
            model = self._chat_model(temperature, 300).bind_tools(tools, tool_choice="auto")
            response = await model.ainvoke(
                [SystemMessage(content=system), HumanMessage(content=message)]
            )
        except Exception as e:
            logger.error(f"[LLMClient] Tool selection failed: {e}")
            return None

        tool_calls = getattr(response, "tool_calls", None) or []
        if not tool_calls:
            logger.info("[LLMClient] Model answered without a tool call")
            return None
        call = tool_calls[0]
        return call.get("name"), call.get("args") or {}
