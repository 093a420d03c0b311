"""
Configuration loader for the squad router.

The application configuration is stored in a YAML file. This module
provides a function to load that file into a Python dictionary and the
AgentSquadConfig policy object read by the orchestrator. Sensitive values
like API keys are not stored in the YAML file; instead, they are
retrieved from environment variables as needed by agents and classifiers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

import yaml


DEFAULT_CLASSIFICATION_ERROR_MESSAGE = (
    "I'm sorry, an error occurred while processing your request. "
    "Please try again later."
)
DEFAULT_NO_SELECTED_AGENT_MESSAGE = (
    "I'm sorry, I couldn't determine how to handle your request. "
    "Could you please rephrase it?"
)
DEFAULT_GENERAL_ROUTING_ERROR_MESSAGE = (
    "An error occurred while processing your request. Please try again later."
)


def load_app_config(path: str) -> Dict[str, Any]:
    """
    Load the application configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A dictionary representing the configuration.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the top-level configuration is not a mapping.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found at: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError("Top-level configuration must be a mapping/dictionary.")

    return data


@dataclass(frozen=True)
class AgentSquadConfig:
    """
    Process-wide routing policy.

    The orchestrator keeps one instance for its whole lifetime. Every
    field has a default, so an empty mapping yields a usable config.
    """

    LOG_AGENT_CHAT: bool = False
    LOG_CLASSIFIER_CHAT: bool = False
    LOG_CLASSIFIER_RAW_OUTPUT: bool = False
    LOG_CLASSIFIER_OUTPUT: bool = False
    LOG_EXECUTION_TIMES: bool = False
    MAX_RETRIES: int = 3
    MAX_MESSAGE_PAIRS_PER_AGENT: int = 100
    USE_DEFAULT_AGENT_IF_NONE_IDENTIFIED: bool = True
    CLASSIFICATION_ERROR_MESSAGE: str = DEFAULT_CLASSIFICATION_ERROR_MESSAGE
    NO_SELECTED_AGENT_MESSAGE: str = DEFAULT_NO_SELECTED_AGENT_MESSAGE
    GENERAL_ROUTING_ERROR_MSG_MESSAGE: str = DEFAULT_GENERAL_ROUTING_ERROR_MESSAGE

    def __post_init__(self) -> None:
        if self.MAX_RETRIES < 0:
            raise ValueError("MAX_RETRIES must be zero or greater.")
        if self.MAX_MESSAGE_PAIRS_PER_AGENT < 1:
            raise ValueError("MAX_MESSAGE_PAIRS_PER_AGENT must be at least 1.")

    @classmethod
    def from_dict(cls, cfg: Optional[Mapping[str, Any]]) -> "AgentSquadConfig":
        """
        Build a config from a mapping such as the `orchestrator:` YAML section.

        Keys are matched case-insensitively, so `max_retries` and
        `MAX_RETRIES` are equivalent. Unknown keys raise ValueError.
        """
        if not cfg:
            return cls()
        if not isinstance(cfg, Mapping):
            raise ValueError("Orchestrator configuration must be a mapping/dictionary.")

        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in cfg.items():
            name = str(key).upper()
            if name not in known:
                raise ValueError(f"Unknown orchestrator option: {key!r}")
            if value is None:
                continue
            if known[name].type in ("bool", bool):
                if isinstance(value, str):
                    value = value.strip().lower() in ("1", "true", "yes", "on")
                else:
                    value = bool(value)
            elif known[name].type in ("int", int):
                value = int(value)
            else:
                value = str(value)
            values[name] = value
        return cls(**values)
