"""
Anthropic classifier implementation.

Forces Claude to answer through an `analyzePrompt` tool so the selected
agent and confidence come back as structured input instead of free text.
HTTP 529 / `overloaded_error` responses are reported as transient
overloads and retried by the base class.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import anthropic

from squad.classifiers.base import Classifier
from squad.core.errors import ClassificationError, ClassifierOverloadedError, ProviderError
from squad.core.prompts import PromptManager
from squad.core.types import ClassifierResult, ConversationHistory

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-3-5-sonnet-latest"

ANALYZE_PROMPT_TOOL: Dict[str, Any] = {
    "name": "analyzePrompt",
    "description": "Analyze the user input and provide structured output",
    "input_schema": {
        "type": "object",
        "properties": {
            "userinput": {"type": "string", "description": "The original user input"},
            "selected_agent": {"type": "string", "description": "The id of the selected agent"},
            "confidence": {"type": "number", "description": "Confidence level between 0 and 1"},
        },
        "required": ["userinput", "selected_agent", "confidence"],
    },
}


def is_overloaded(exc: Exception) -> bool:
    if not isinstance(exc, anthropic.APIStatusError):
        return False
    if exc.status_code == 529:
        return True
    body = exc.body if isinstance(exc.body, dict) else {}
    error = body.get("error") if isinstance(body.get("error"), dict) else body
    return error.get("type") == "overloaded_error"


class AnthropicClassifier(Classifier):
    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key_env: str = "ANTHROPIC_API_KEY",
        client: Optional[anthropic.AsyncAnthropic] = None,
        max_tokens: int = 4096,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        prompts: Optional[PromptManager] = None,
        log_request: bool = False,
    ) -> None:
        super().__init__(prompts=prompts, log_request=log_request)
        self.model = model
        self.api_key_env = api_key_env
        self._client_instance = client
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        prompts: Optional[PromptManager] = None,
    ) -> "AnthropicClassifier":
        return cls(
            model=cfg.get("model", DEFAULT_MODEL),
            api_key_env=cfg.get("api_key_env", "ANTHROPIC_API_KEY"),
            max_tokens=int(cfg.get("max_tokens", 4096)),
            temperature=cfg.get("temperature"),
            top_p=cfg.get("top_p"),
            prompts=prompts,
            log_request=bool(cfg.get("log_request", False)),
        )

    def _client(self) -> anthropic.AsyncAnthropic:
        if self._client_instance is not None:
            return self._client_instance
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise ProviderError(
                f"Environment variable '{self.api_key_env}' is not set for the classifier."
            )
        self._client_instance = anthropic.AsyncAnthropic(api_key=api_key)
        return self._client_instance

    async def process_request(
        self,
        input_text: str,
        chat_history: ConversationHistory,
    ) -> List[ClassifierResult]:
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": self.system_prompt(chat_history),
            "messages": [{"role": "user", "content": input_text}],
            "tools": [ANALYZE_PROMPT_TOOL],
            "tool_choice": {"type": "tool", "name": "analyzePrompt"},
        }
        if self.temperature is not None:
            request["temperature"] = self.temperature
        if self.top_p is not None:
            request["top_p"] = self.top_p

        try:
            response = await self._client().messages.create(**request)
        except Exception as exc:  # noqa: BLE001
            if is_overloaded(exc):
                raise ClassifierOverloadedError(str(exc)) from exc
            raise

        if self.log_request:
            logger.debug("anthropic classifier request: %s", request)
            logger.debug("anthropic classifier response: %s", response)

        stats = {
            "id": response.id,
            "model": response.model,
            "usage": response.usage,
            "from": "anthropic_classifier",
        }
        logger.info("Anthropic classifier usage: %s", response.usage)

        tool_use = next(
            (block for block in response.content if getattr(block, "type", "") == "tool_use"),
            None,
        )
        if tool_use is None:
            raise ClassificationError("No tool use found in the classifier response.")
        tool_input = tool_use.input
        if not isinstance(tool_input, dict) or "selected_agent" not in tool_input or "confidence" not in tool_input:
            raise ClassificationError("Classifier tool input does not match expected structure.")

        return [self.build_result(tool_input["selected_agent"], tool_input["confidence"], [stats])]
