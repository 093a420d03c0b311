"""
Request orchestration.

The Orchestrator owns the agent registry, the default agent, the
classifier and the chat storage. For every request it classifies the
input, selects an agent, dispatches the request with the agent's own
bounded history, and persists the resulting turn. Agents never see the
registry or write to storage themselves.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple, Union

from squad.agents.base import Agent
from squad.classifiers.base import Classifier
from squad.config import AgentSquadConfig
from squad.core.errors import (
    AgentExecutionError,
    ClassificationError,
    ConfigurationError,
    NotConfiguredError,
    StorageError,
)
from squad.core.logger import SquadLogger
from squad.core.types import (
    AgentProcessingResult,
    AgentResponse,
    ClassifierResult,
    ConversationHistory,
    ConversationMessage,
    ParticipantRole,
)
from squad.storage.base import ChatStorage
from squad.storage.in_memory import InMemoryChatStorage

logger = logging.getLogger(__name__)

# Reserved storage scope holding raw user turns and routing decisions,
# so the classifier sees prior context without reading agent transcripts.
CLASSIFIER_AGENT_ID = "classifier"
NO_AGENT_ID = "no_agent_selected"
NO_AGENT_NAME = "No Agent"


class Orchestrator:
    """
    Orchestrator routes user input to the most suitable agent.

    The registry and default agent are expected to be set up before
    traffic starts; they are read without locking during dispatch.
    """

    def __init__(
        self,
        options: Union[AgentSquadConfig, Mapping[str, Any], None] = None,
        storage: Optional[ChatStorage] = None,
        classifier: Optional[Classifier] = None,
        default_agent: Optional[Agent] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if isinstance(options, AgentSquadConfig):
            self.config = options
        else:
            self.config = AgentSquadConfig.from_dict(options)
        self.storage = storage or InMemoryChatStorage()
        self.classifier = classifier
        self.default_agent = default_agent
        self.logger = SquadLogger(self.config, logger)
        self.agents: Dict[str, Agent] = {}
        # Entries disappear once no request holds or waits on the lock.
        self._conversation_locks: weakref.WeakValueDictionary[Tuple[str, str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_agent(self, agent: Agent) -> None:
        """Register an agent. A second agent with the same id replaces the first."""
        if agent.id in self.agents:
            logger.warning("Agent id %r already registered; replacing it.", agent.id)
        self.agents[agent.id] = agent
        if self.classifier is not None:
            self.classifier.set_agents(self.agents)

    def get_default_agent(self) -> Agent:
        if self.default_agent is None:
            raise NotConfiguredError("No default agent is configured.")
        return self.default_agent

    def set_default_agent(self, agent: Agent) -> None:
        self.default_agent = agent

    def set_classifier(self, classifier: Classifier) -> None:
        self.classifier = classifier
        classifier.set_agents(self.agents)

    def get_all_agents(self) -> Dict[str, Dict[str, str]]:
        return {
            agent_id: {"name": agent.name, "description": agent.description}
            for agent_id, agent in self.agents.items()
        }

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    async def route_request(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        additional_params: Optional[Dict[str, Any]] = None,
        stream_response: bool = False,
    ) -> AgentResponse:
        """
        Classify the input, select an agent and dispatch the request.

        Raises:
            ClassificationError: If the classifier fails. Nothing is persisted.
            AgentExecutionError: If the selected agent fails.
            StorageError: If history cannot be fetched or saved.
            ConfigurationError: If no classifier is configured, or the
                default agent is needed but not configured.
        """
        if self.classifier is None:
            raise ConfigurationError("No classifier is configured.")
        additional_params = additional_params or {}
        execution_times: Dict[str, float] = {}

        classifier_history = await self._fetch_history(user_id, session_id, CLASSIFIER_AGENT_ID)
        self.logger.print_chat_history(classifier_history)

        started = time.perf_counter()
        try:
            result = await self.classifier.classify(
                input_text,
                classifier_history,
                max_retries=self.config.MAX_RETRIES,
            )
        except ClassificationError as exc:
            logger.error("Classification failed: %s", exc)
            raise ClassificationError(
                str(exc), user_message=self.config.CLASSIFICATION_ERROR_MESSAGE
            ) from exc
        finally:
            execution_times["Classifying user intent"] = time.perf_counter() - started

        self.logger.print_intent(input_text, result)

        if result.selected_agent is None:
            if self.config.USE_DEFAULT_AGENT_IF_NONE_IDENTIFIED:
                result = ClassifierResult(
                    selected_agent=self.get_default_agent(),
                    confidence=None,
                    model_stats=result.model_stats,
                )
                logger.info("No agent identified; using default agent %r.", result.selected_agent.id)
            else:
                await self._record_classifier_turn(user_id, session_id, input_text, NO_AGENT_ID)
                self.logger.print_execution_times(execution_times)
                return self._no_agent_response(input_text, user_id, session_id, additional_params, result)

        await self._record_classifier_turn(user_id, session_id, input_text, result.selected_agent.id)
        return await self._dispatch(
            input_text,
            user_id,
            session_id,
            result,
            additional_params,
            stream_response,
            execution_times,
        )

    def _no_agent_response(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        additional_params: Dict[str, Any],
        result: ClassifierResult,
    ) -> AgentResponse:
        metadata = AgentProcessingResult(
            user_input=input_text,
            agent_id=NO_AGENT_ID,
            agent_name=NO_AGENT_NAME,
            user_id=user_id,
            session_id=session_id,
            additional_params=additional_params,
            confidence=result.confidence,
            model_stats=result.model_stats,
        )
        output = ConversationMessage.from_text(
            ParticipantRole.ASSISTANT, self.config.NO_SELECTED_AGENT_MESSAGE
        )
        return AgentResponse(metadata=metadata, output=output, streaming=False)

    async def agent_process_request(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        classifier_result: ClassifierResult,
        additional_params: Optional[Dict[str, Any]] = None,
        stream_response: bool = False,
    ) -> AgentResponse:
        """
        Dispatch directly to the agent in `classifier_result`, bypassing
        classification, and persist the turn.

        When the agent streams and `stream_response` is set, the returned
        output yields fragments as they arrive and the turn is persisted
        only after the stream has been fully consumed.
        """
        if classifier_result.selected_agent is None:
            raise ConfigurationError("agent_process_request requires a selected agent.")
        return await self._dispatch(
            input_text,
            user_id,
            session_id,
            classifier_result,
            additional_params or {},
            stream_response,
            {},
        )

    async def _dispatch(
        self,
        input_text: str,
        user_id: str,
        session_id: str,
        classifier_result: ClassifierResult,
        additional_params: Dict[str, Any],
        stream_response: bool,
        execution_times: Dict[str, float],
    ) -> AgentResponse:
        agent = classifier_result.selected_agent

        metadata = AgentProcessingResult(
            user_input=input_text,
            agent_id=agent.id,
            agent_name=agent.name,
            user_id=user_id,
            session_id=session_id,
            additional_params=additional_params,
            confidence=classifier_result.confidence,
            model_stats=list(classifier_result.model_stats),
        )

        history = await self._fetch_history(user_id, session_id, agent.id)
        self.logger.print_chat_history(history, agent.id)

        started = time.perf_counter()
        try:
            output = await agent.process_request(
                input_text, user_id, session_id, history, additional_params
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("Agent %r failed: %s", agent.id, exc)
            raise AgentExecutionError(
                f"Agent {agent.id!r} failed: {exc}",
                user_message=self.config.GENERAL_ROUTING_ERROR_MSG_MESSAGE,
                agent_id=agent.id,
            ) from exc

        if isinstance(output, ConversationMessage):
            execution_times[f"Agent {agent.name} | Processing request"] = (
                time.perf_counter() - started
            )
            await self._save_turn(agent, user_id, session_id, input_text, output)
            self.logger.print_execution_times(execution_times)
            return AgentResponse(metadata=metadata, output=output, streaming=False)

        if stream_response:
            stream = self._stream_and_persist(
                agent, user_id, session_id, input_text, output, started, execution_times
            )
            return AgentResponse(metadata=metadata, output=stream, streaming=True)

        chunks = [chunk async for chunk in self._guard_stream(agent, output)]
        message = ConversationMessage.from_text(ParticipantRole.ASSISTANT, "".join(chunks))
        execution_times[f"Agent {agent.name} | Processing request"] = (
            time.perf_counter() - started
        )
        await self._save_turn(agent, user_id, session_id, input_text, message)
        self.logger.print_execution_times(execution_times)
        return AgentResponse(metadata=metadata, output=message, streaming=False)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _guard_stream(self, agent: Agent, stream: AsyncIterator[str]) -> AsyncIterator[str]:
        try:
            async for chunk in stream:
                yield chunk
        except Exception as exc:  # noqa: BLE001
            logger.error("Agent %r stream failed: %s", agent.id, exc)
            raise AgentExecutionError(
                f"Agent {agent.id!r} stream failed: {exc}",
                user_message=self.config.GENERAL_ROUTING_ERROR_MSG_MESSAGE,
                agent_id=agent.id,
            ) from exc

    async def _stream_and_persist(
        self,
        agent: Agent,
        user_id: str,
        session_id: str,
        input_text: str,
        stream: AsyncIterator[str],
        started: float,
        execution_times: Dict[str, float],
    ) -> AsyncIterator[str]:
        chunks: List[str] = []
        async for chunk in self._guard_stream(agent, stream):
            chunks.append(chunk)
            yield chunk

        # Reached only when the consumer drained the whole stream.
        execution_times[f"Agent {agent.name} | Processing request"] = (
            time.perf_counter() - started
        )
        message = ConversationMessage.from_text(ParticipantRole.ASSISTANT, "".join(chunks))
        await self._save_turn(agent, user_id, session_id, input_text, message)
        self.logger.print_execution_times(execution_times)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def _fetch_history(self, user_id: str, session_id: str, agent_id: str) -> ConversationHistory:
        try:
            return await self.storage.fetch_chat(
                user_id,
                session_id,
                agent_id,
                max_pairs=self.config.MAX_MESSAGE_PAIRS_PER_AGENT,
            )
        except StorageError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise StorageError(
                f"Failed to fetch history for {agent_id!r}: {exc}",
                user_message=self.config.GENERAL_ROUTING_ERROR_MSG_MESSAGE,
            ) from exc

    def _conversation_lock(self, user_id: str, session_id: str, agent_id: str) -> asyncio.Lock:
        key = (user_id, session_id, agent_id)
        lock = self._conversation_locks.get(key)
        if lock is None:
            lock = self._conversation_locks[key] = asyncio.Lock()
        return lock

    async def _save_pair(
        self,
        user_id: str,
        session_id: str,
        agent_id: str,
        user_message: ConversationMessage,
        assistant_message: ConversationMessage,
    ) -> None:
        async with self._conversation_lock(user_id, session_id, agent_id):
            try:
                await self.storage.save_chat_messages(
                    user_id,
                    session_id,
                    agent_id,
                    [user_message, assistant_message],
                    max_pairs=self.config.MAX_MESSAGE_PAIRS_PER_AGENT,
                )
            except StorageError:
                raise
            except Exception as exc:  # noqa: BLE001
                raise StorageError(
                    f"Failed to save history for {agent_id!r}: {exc}",
                    user_message=self.config.GENERAL_ROUTING_ERROR_MSG_MESSAGE,
                ) from exc

    async def _save_turn(
        self,
        agent: Agent,
        user_id: str,
        session_id: str,
        input_text: str,
        output: ConversationMessage,
    ) -> None:
        if not agent.save_chat:
            return
        user_message = ConversationMessage.from_text(
            ParticipantRole.USER, input_text, timestamp=time.time()
        )
        if output.timestamp is None:
            output.timestamp = time.time()
        await self._save_pair(user_id, session_id, agent.id, user_message, output)

    async def _record_classifier_turn(
        self,
        user_id: str,
        session_id: str,
        input_text: str,
        routed_to: str,
    ) -> None:
        now = time.time()
        await self._save_pair(
            user_id,
            session_id,
            CLASSIFIER_AGENT_ID,
            ConversationMessage.from_text(ParticipantRole.USER, input_text, timestamp=now),
            ConversationMessage.from_text(ParticipantRole.ASSISTANT, f"[{routed_to}]", timestamp=now),
        )
