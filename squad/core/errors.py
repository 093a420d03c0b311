"""
Error taxonomy for routing and dispatch.

Errors raised to the caller of the orchestrator derive from
AgentSquadError and carry a user-facing message next to the technical
one. ProviderError and ClassifierOverloadedError are raised by vendor
adapters and translated by the layer above them.
"""

from __future__ import annotations

from typing import Optional


class AgentSquadError(Exception):
    """Base class for errors surfaced by the orchestrator."""

    def __init__(self, message: str, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message or message


class ClassificationError(AgentSquadError):
    """Raised when the classifier fails or returns an unusable result."""


class AgentExecutionError(AgentSquadError):
    """Raised when the selected agent fails to produce a response."""

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        agent_id: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message)
        self.agent_id = agent_id


class StorageError(AgentSquadError):
    """Raised when conversation history cannot be fetched or saved."""


class ConfigurationError(AgentSquadError):
    """Raised when the orchestrator is used in a state it was not set up for."""


class NotConfiguredError(ConfigurationError):
    """Raised when the default agent is requested but none is configured."""


class ProviderError(Exception):
    """Raised when a model provider fails to execute a request."""


class ClassifierOverloadedError(Exception):
    """Raised by classifiers when the model backend reports a transient overload."""
