"""
Config-gated observability logging for the orchestrator.

SquadLogger only decides *what* to log based on the AgentSquadConfig
toggles; handlers and levels are configured by the application.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from squad.config import AgentSquadConfig
from squad.core.types import ClassifierResult, ConversationHistory


class SquadLogger:
    def __init__(
        self,
        config: AgentSquadConfig,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.logger = logger or logging.getLogger("squad")

    def print_chat_history(
        self,
        history: ConversationHistory,
        agent_id: Optional[str] = None,
    ) -> None:
        """Log a conversation when the matching LOG_*_CHAT toggle is on."""
        is_classifier = agent_id is None
        if is_classifier and not self.config.LOG_CLASSIFIER_CHAT:
            return
        if not is_classifier and not self.config.LOG_AGENT_CHAT:
            return

        title = "Classifier Chat History" if is_classifier else f"Agent {agent_id} Chat History"
        self.logger.info("** %s **", title.upper())
        if not history.messages:
            self.logger.info("> - None -")
            return
        if history.summary:
            self.logger.info("> summary: %s", history.summary)
        for index, message in enumerate(history.messages, start=1):
            self.logger.info("> %d. %s: %s", index, message.role.value, message.text)

    def print_intent(self, user_input: str, result: ClassifierResult) -> None:
        if self.config.LOG_CLASSIFIER_RAW_OUTPUT and result.model_stats:
            self.logger.info("** CLASSIFIER RAW OUTPUT ** %s", result.model_stats)
        if not self.config.LOG_CLASSIFIER_OUTPUT:
            return
        self.logger.info("** CLASSIFIED INTENT **")
        self.logger.info("> Text: %s", user_input)
        if result.selected_agent is None:
            self.logger.info("> Selected Agent: No agent selected")
        else:
            self.logger.info("> Selected Agent: %s", result.selected_agent.name)
        self.logger.info("> Confidence: %s", result.confidence)

    def print_execution_times(self, execution_times: Dict[str, float]) -> None:
        if not self.config.LOG_EXECUTION_TIMES or not execution_times:
            return
        self.logger.info("** EXECUTION TIMES **")
        for name, seconds in execution_times.items():
            self.logger.info("> %s: %.1fms", name, seconds * 1000)
