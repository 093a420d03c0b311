"""
OpenAI classifier implementation.

Multi-intent variant: the model is forced to call an `analyzePrompt`
function whose `agents` argument lists every matching agent with its
own confidence. Results are returned ranked by the base class.
Rate-limit and HTTP 503 responses count as transient overloads.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from squad.classifiers.base import Classifier
from squad.core.errors import ClassificationError, ClassifierOverloadedError, ProviderError
from squad.core.prompts import PromptManager
from squad.core.types import ClassifierResult, ConversationHistory

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

ANALYZE_PROMPT_FUNCTION: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "analyzePrompt",
        "description": "Analyze the user input and provide structured output",
        "parameters": {
            "type": "object",
            "properties": {
                "agents": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "userinput": {"type": "string", "description": "The original user input"},
                            "selected_agent": {"type": "string", "description": "The id of the selected agent"},
                            "confidence": {"type": "number", "description": "Confidence level between 0 and 1"},
                        },
                        "required": ["userinput", "selected_agent", "confidence"],
                    },
                }
            },
            "required": ["agents"],
        },
    },
}


def is_overloaded(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return isinstance(exc, openai.APIStatusError) and exc.status_code == 503


class OpenAIClassifier(Classifier):
    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key_env: str = "OPENAI_API_KEY",
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        max_tokens: int = 4096,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        prompts: Optional[PromptManager] = None,
        log_request: bool = False,
    ) -> None:
        super().__init__(prompts=prompts, log_request=log_request)
        self.model = model
        self.api_key_env = api_key_env
        self.base_url = base_url
        self._client_instance = client
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.top_p = top_p

    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any],
        prompts: Optional[PromptManager] = None,
    ) -> "OpenAIClassifier":
        return cls(
            model=cfg.get("model", DEFAULT_MODEL),
            api_key_env=cfg.get("api_key_env", "OPENAI_API_KEY"),
            base_url=cfg.get("base_url"),
            max_tokens=int(cfg.get("max_tokens", 4096)),
            temperature=cfg.get("temperature"),
            top_p=cfg.get("top_p"),
            prompts=prompts,
            log_request=bool(cfg.get("log_request", False)),
        )

    def _client(self) -> AsyncOpenAI:
        if self._client_instance is not None:
            return self._client_instance
        api_key = os.getenv(self.api_key_env)
        if not api_key:
            raise ProviderError(
                f"Environment variable '{self.api_key_env}' is not set for the classifier."
            )
        self._client_instance = AsyncOpenAI(api_key=api_key, base_url=self.base_url)
        return self._client_instance

    async def process_request(
        self,
        input_text: str,
        chat_history: ConversationHistory,
    ) -> List[ClassifierResult]:
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": self.system_prompt(chat_history)},
                {"role": "user", "content": input_text},
            ],
            "tools": [ANALYZE_PROMPT_FUNCTION],
            "tool_choice": {"type": "function", "function": {"name": "analyzePrompt"}},
        }
        if self.temperature is not None:
            request["temperature"] = self.temperature
        if self.top_p is not None:
            request["top_p"] = self.top_p

        try:
            response = await self._client().chat.completions.create(**request)
        except Exception as exc:  # noqa: BLE001
            if is_overloaded(exc):
                raise ClassifierOverloadedError(str(exc)) from exc
            raise

        if self.log_request:
            logger.debug("openai classifier request: %s", request)
            logger.debug("openai classifier response: %s", response)

        stats = {
            "id": response.id,
            "model": response.model,
            "usage": response.usage,
            "from": "openai_classifier",
        }
        logger.info("OpenAI classifier usage: %s", response.usage)

        tool_calls = response.choices[0].message.tool_calls if response.choices else None
        if not tool_calls or tool_calls[0].function.name != "analyzePrompt":
            raise ClassificationError("No valid tool call found in the classifier response.")

        try:
            tool_input = json.loads(tool_calls[0].function.arguments)
        except json.JSONDecodeError as exc:
            raise ClassificationError("Classifier tool arguments are not valid JSON.") from exc

        candidates = tool_input.get("agents") if isinstance(tool_input, dict) else None
        if not isinstance(candidates, list):
            raise ClassificationError("Classifier tool input does not match expected structure.")

        results: List[ClassifierResult] = []
        for candidate in candidates:
            if not isinstance(candidate, dict) or "selected_agent" not in candidate:
                raise ClassificationError("Classifier tool input does not match expected structure.")
            results.append(
                self.build_result(candidate["selected_agent"], candidate.get("confidence"), [stats])
            )
        return results
