from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from insightstream.config import LLMConfig, load_config
from insightstream.errors import DownstreamError, EmptyHistoryError, ParseError

logger = logging.getLogger(__name__)

_BASE_SYSTEM = (
    "You are InsightStream, an AI assistant inside a data analysis tool. "
    "Answer clearly and concisely."
)

DEFAULT_INTENT: Dict[str, Any] = {"intent": "general_query", "action": "response", "parameters": {}}

_INTENT_PROMPT = """You are an AI assistant for a data analysis tool. Analyze the user's command and identify their intent.
User Command: "{command}"
Respond in JSON format with:
{{
  "intent": "general_query | data_cleaning | visualization | analysis",
  "action": "specific action to take",
  "parameters": {{}}
}}
Examples:
- "clean this data" -> intent: data_cleaning
- "show me a bar chart" -> intent: visualization
- "what's the weather today?" -> intent: general_query
"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json(text: str) -> Any:
    """
    Pull the JSON object out of a model reply: greedy match from the first
    '{' to the last '}', then json.loads.  Raises ParseError when there is
    nothing usable.
    """
    if not text:
        raise ParseError("Empty content")
    m = _JSON_OBJECT.search(text)
    if not m:
        raise ParseError("No JSON object in model reply")
    try:
        return json.loads(m.group(0))
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in model reply: {e}") from e


def to_model_role(role: str) -> str:
    return "user" if role == "user" else "assistant"


def _turn_field(turn: Any, name: str) -> str:
    if isinstance(turn, Mapping):
        return turn.get(name) or ""
    return getattr(turn, name, "") or ""


class LLMGateway:
    """Thin client for an OpenAI-compatible chat completions endpoint."""

    def __init__(self, cfg: Optional[LLMConfig] = None):
        self.cfg = cfg or load_config().llm

    def chat_completion(
        self,
        messages: List[Dict[str, str]],
        temperature: float | None = None,
        system_extra: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        cfg = self.cfg
        url = cfg.base_url.rstrip('/') + '/chat/completions'
        headers = {"Authorization": f"Bearer {cfg.api_key}", "Content-Type": "application/json"}
        system_content = _BASE_SYSTEM + (" " + system_extra.strip() if system_extra else "")
        if not messages or messages[0].get("role") != "system":
            messages = [{"role":"system","content":system_content}] + messages
        else:
            messages = [{**messages[0], "content": (messages[0].get("content") or "") + " " + system_content}] + messages[1:]
        payload: Dict[str, Any] = {
            "model": cfg.model,
            "temperature": cfg.temperature if temperature is None else temperature,
            "messages": messages,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens
        try:
            r = requests.post(url, headers=headers, json=payload, timeout=cfg.timeout_seconds)
        except requests.Timeout as e:
            raise DownstreamError(f"Upstream request timed out after {cfg.timeout_seconds}s") from e
        except requests.RequestException as e:
            raise DownstreamError(f"Upstream request failed: {e}") from e
        if not r.ok:
            logger.error("LLM endpoint answered %s: %s", r.status_code, r.text[:500])
            raise DownstreamError(f"Upstream returned HTTP {r.status_code}")
        try:
            data = r.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise DownstreamError("Unexpected response schema from upstream") from e
        if content is None:
            raise DownstreamError("Upstream returned an empty message")
        return content

    def generate(self, prompt: str) -> str:
        return self.chat_completion([{"role": "user", "content": prompt}])

    def classify_intent(self, command: str) -> Dict[str, Any]:
        """
        Ask the model for {intent, action, parameters}.  The parsed object is
        returned as-is; any parse problem falls back to DEFAULT_INTENT.
        Transport failures still raise DownstreamError.
        """
        raw = self.chat_completion(
            [{"role": "user", "content": _INTENT_PROMPT.format(command=command)}],
            temperature=0.0,
        )
        try:
            obj = extract_json(raw)
            if not isinstance(obj, dict):
                raise ParseError("Intent reply is not a JSON object")
        except ParseError as e:
            logger.info("Intent parse fallback for %r: %s", command, e)
            return dict(DEFAULT_INTENT, parameters={})
        return obj

    def send_message(self, history: List[Dict[str, str]], message: str, max_tokens: Optional[int] = None) -> str:
        return self.chat_completion(history + [{"role": "user", "content": message}], max_tokens=max_tokens)

    def chat_with_context(self, history: Sequence[Any]) -> str:
        """
        Replay every turn but the last as model history, then send the last
        turn's content as the new message.  Turns may be dicts or objects with
        ``role``/``content``.
        """
        if not history:
            raise EmptyHistoryError("Chat history must contain at least one message")
        prior = [
            {"role": to_model_role(_turn_field(t, "role")), "content": _turn_field(t, "content")}
            for t in history[:-1]
        ]
        last = _turn_field(history[-1], "content")
        return self.send_message(prior, last, max_tokens=self.cfg.max_output_tokens)
