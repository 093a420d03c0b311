"""
Shared fixtures and stub collaborators for the squad test suite.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from squad.agents.base import Agent
from squad.classifiers.base import Classifier
from squad.core.types import (
    ClassifierResult,
    ConversationHistory,
    ConversationMessage,
    ParticipantRole,
)
from squad.storage.in_memory import InMemoryChatStorage


class StubAgent(Agent):
    """Agent returning a canned reply and recording every call."""

    def __init__(self, name: str, description: str, agent_id: Optional[str] = None, reply: str = "ok", **kwargs: Any) -> None:
        super().__init__(name=name, description=description, agent_id=agent_id, **kwargs)
        self.reply = reply
        self.calls: List[Dict[str, Any]] = []

    async def process_request(self, input_text, user_id, session_id, chat_history, additional_params=None):
        self.calls.append(
            {
                "input_text": input_text,
                "user_id": user_id,
                "session_id": session_id,
                "chat_history": chat_history,
                "additional_params": additional_params,
            }
        )
        return ConversationMessage.from_text(ParticipantRole.ASSISTANT, self.reply)


class StreamingStubAgent(StubAgent):
    """Agent yielding a fixed list of fragments."""

    def __init__(self, name: str, description: str, fragments: Sequence[str], fail_after: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(name=name, description=description, streaming=True, **kwargs)
        self.fragments = list(fragments)
        self.fail_after = fail_after

    async def process_request(self, input_text, user_id, session_id, chat_history, additional_params=None):
        await super().process_request(input_text, user_id, session_id, chat_history, additional_params)
        return self._generate()

    async def _generate(self):
        for index, fragment in enumerate(self.fragments):
            if self.fail_after is not None and index == self.fail_after:
                raise RuntimeError("backend dropped the stream")
            yield fragment


class FailingAgent(StubAgent):
    async def process_request(self, input_text, user_id, session_id, chat_history, additional_params=None):
        raise RuntimeError("backend outage")


ScriptItem = Union[Tuple[Optional[str], Any], Exception]


class ScriptedClassifier(Classifier):
    """
    Classifier replaying a script of (agent_id, confidence) tuples or
    exceptions, one per model call. The last item repeats forever.
    """

    def __init__(self, script: Sequence[ScriptItem], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.script = list(script)
        self.calls: List[Tuple[str, ConversationHistory]] = []

    async def process_request(self, input_text, chat_history) -> List[ClassifierResult]:
        self.calls.append((input_text, chat_history))
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        agent_id, confidence = item
        return [self.build_result(agent_id, confidence)]


@pytest.fixture
def storage():
    return InMemoryChatStorage()


@pytest.fixture
def tech_agent():
    return StubAgent("Tech Agent", "Fixes computers and devices.", agent_id="tech", reply="Try holding the power button.")


@pytest.fixture
def billing_agent():
    return StubAgent("Billing Agent", "Handles invoices and refunds.", agent_id="billing", reply="Your refund is on its way.")
