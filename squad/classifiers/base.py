"""
Base class for intent classifiers.

A classifier asks a model which registered agent should handle a user
input. Concrete classifiers implement `process_request` (the vendor
call); this module owns the agent lookup, the system prompt, the
bounded retry on transient overload, and confidence normalization.
"""

from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from squad.core.errors import ClassificationError, ClassifierOverloadedError
from squad.core.prompts import (
    PromptManager,
    format_agent_descriptions,
    format_history,
    render,
)
from squad.core.types import ClassifierResult, ConversationHistory

if TYPE_CHECKING:
    from squad.agents.base import Agent

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 0.5


def normalize_confidence(value: Any) -> float:
    """
    Coerce a model-reported confidence into a float within [0, 1].

    Raises:
        ClassificationError: If the value is missing, not numeric, or NaN.
    """
    try:
        confidence = float(value)
    except (TypeError, ValueError) as exc:
        raise ClassificationError(f"Classifier returned a non-numeric confidence: {value!r}") from exc
    if math.isnan(confidence):
        raise ClassificationError("Classifier returned NaN confidence.")
    return min(1.0, max(0.0, confidence))


class Classifier(ABC):
    """
    Abstract base class for all classifiers.

    The orchestrator calls `set_agents` whenever its registry changes so
    the system prompt always lists the live agents.
    """

    def __init__(
        self,
        prompts: Optional[PromptManager] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        log_request: bool = False,
    ) -> None:
        self.prompt_template = (prompts or PromptManager()).get_classifier_template()
        self.max_retries = max_retries
        self.log_request = log_request
        self.agents: Dict[str, "Agent"] = {}
        self.agent_descriptions = ""

    def set_agents(self, agents: Dict[str, "Agent"]) -> None:
        self.agents = {agent_id.lower(): agent for agent_id, agent in agents.items()}
        self.agent_descriptions = format_agent_descriptions(
            agent.descriptor() for agent in self.agents.values()
        )

    def set_system_prompt(self, template: str) -> None:
        self.prompt_template = template

    def system_prompt(self, chat_history: ConversationHistory) -> str:
        return render(
            self.prompt_template,
            {
                "AGENT_DESCRIPTIONS": self.agent_descriptions,
                "HISTORY": format_history(chat_history.messages),
            },
        )

    def get_agent_by_id(self, agent_id: Optional[str]) -> Optional["Agent"]:
        """Resolve a model-chosen identifier against the live registry."""
        if not agent_id:
            return None
        key = str(agent_id).strip().split(" ")[0].lower()
        return self.agents.get(key)

    def build_result(
        self,
        selected_agent: Optional[str],
        confidence: Any,
        model_stats: Iterable[Dict[str, Any]] = (),
    ) -> ClassifierResult:
        agent = self.get_agent_by_id(selected_agent)
        if agent is None and selected_agent:
            logger.info("Classifier chose unknown agent id %r; no agent selected.", selected_agent)
        return ClassifierResult(
            selected_agent=agent,
            confidence=normalize_confidence(confidence),
            model_stats=list(model_stats),
        )

    @abstractmethod
    async def process_request(
        self,
        input_text: str,
        chat_history: ConversationHistory,
    ) -> List[ClassifierResult]:
        """
        Call the model once and return the candidate results.

        Implementations raise ClassifierOverloadedError for transient
        overload responses so the caller can retry.
        """

    async def classify_ranked(
        self,
        input_text: str,
        chat_history: ConversationHistory,
        max_retries: Optional[int] = None,
    ) -> List[ClassifierResult]:
        """
        Classify with retry, returning results by descending confidence.

        On overload the request is retried up to `max_retries` times,
        waiting `attempt * 0.5` seconds before each retry. Any other
        failure, or running out of retries, raises ClassificationError.
        """
        retries = self.max_retries if max_retries is None else max_retries
        attempt = 0
        while True:
            try:
                results = await self.process_request(input_text, chat_history)
                break
            except ClassifierOverloadedError as exc:
                attempt += 1
                if attempt > retries:
                    logger.error("Classifier overloaded; exceeded %d retries.", retries)
                    raise ClassificationError(
                        f"Classifier overloaded after {retries} retries: {exc}"
                    ) from exc
                delay = attempt * RETRY_DELAY_SECONDS
                logger.info("Classifier overloaded: retry %d in %.1fs", attempt, delay)
                await asyncio.sleep(delay)
            except ClassificationError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("Classifier error: %s", exc)
                raise ClassificationError(f"Error classifying request: {exc}") from exc

        return sorted(results, key=lambda r: r.confidence or 0.0, reverse=True)

    async def classify(
        self,
        input_text: str,
        chat_history: ConversationHistory,
        max_retries: Optional[int] = None,
    ) -> ClassifierResult:
        results = await self.classify_ranked(input_text, chat_history, max_retries)
        if not results:
            return ClassifierResult()
        return results[0]
