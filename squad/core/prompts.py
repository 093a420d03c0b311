"""
Prompt management.

This module provides a PromptManager class that reads prompt templates
from the loaded YAML configuration and exposes them to agents and
classifiers, supplying default values if prompts are not specified.
Templates use `{{VARIABLE}}` placeholders filled in by `render`.
"""

import re
from typing import Dict, Iterable, List, Mapping, Optional, Union

_PLACEHOLDER = re.compile(r"{{(\w+)}}")

TemplateValue = Union[str, int, float, Iterable[str]]


def render(template: str, variables: Mapping[str, TemplateValue]) -> str:
    """
    Replace `{{NAME}}` placeholders with values from `variables`.

    List values are joined with newlines. Placeholders with no matching
    variable are left in the output unchanged.
    """

    def _substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        if isinstance(value, (list, tuple)):
            return "\n".join(str(v) for v in value)
        return str(value)

    return _PLACEHOLDER.sub(_substitute, template)


DEFAULT_AGENT_TEMPLATE = (
    "You are a {{AGENT_NAME}}. {{AGENT_DESCRIPTION}} Provide helpful and accurate "
    "information based on your expertise.\n"
    "You will engage in an open-ended conversation, providing helpful and accurate "
    "information based on your expertise.\n"
    "Throughout the conversation, you should aim to:\n"
    "- Understand the context and intent behind each new question or prompt.\n"
    "- Provide substantive and well-reasoned responses that directly address the query.\n"
    "- Ask for clarification if any part of the question or prompt is ambiguous.\n"
    "- Maintain a consistent, respectful, and engaging tone.\n"
    "- Seamlessly transition between topics as the human introduces new subjects."
)

DEFAULT_CLASSIFIER_TEMPLATE = (
    "You are AgentMatcher, an intelligent assistant designed to analyze user queries "
    "and match them with the most suitable agent or department. Your task is to "
    "understand the user's request, identify key entities and intents, and determine "
    "which agent would be best equipped to handle the query.\n\n"
    "Available agents and their capabilities:\n"
    "<agents>\n{{AGENT_DESCRIPTIONS}}\n</agents>\n\n"
    "Guidelines for classification:\n"
    "- Agent Type: choose the agent id that best matches the nature of the query. "
    "For follow-up responses, use the same agent as the previous interaction.\n"
    "- Confidence: a number between 0 and 1 indicating how confident you are in the choice.\n"
    "- If no agent fits the request, return an empty selected_agent.\n"
    "- Handle variations in user input, including different phrasings, synonyms, "
    "and potential spelling errors.\n\n"
    "Previous conversation between the user and the router (routing decisions are "
    "shown in brackets):\n"
    "<history>\n{{HISTORY}}\n</history>\n\n"
    "Skip any preamble and provide only the tool call."
)

DEFAULT_SUMMARY_PROMPT = (
    "Summarize the following conversation, highlighting key topics, decisions, and "
    "important context that would be useful for future reference. Provide a concise "
    "summary (2-3 paragraphs) focusing on:\n"
    "1. Main topics discussed\n"
    "2. Key decisions or conclusions\n"
    "3. Important context for future conversations"
)


class PromptManager:
    """
    Store and access prompt templates used by agents, classifiers and
    the summarizer.

    Prompts can be configured in the YAML file under the `prompts` key.
    """

    def __init__(self, prompts_cfg: Optional[Dict] = None) -> None:
        self.prompts_cfg = prompts_cfg or {}

    def get_agent_template(self) -> str:
        return self.prompts_cfg.get("agent_system", DEFAULT_AGENT_TEMPLATE)

    def get_classifier_template(self) -> str:
        return self.prompts_cfg.get("classifier_system", DEFAULT_CLASSIFIER_TEMPLATE)

    def get_summary_prompt(self) -> str:
        return self.prompts_cfg.get("summary_system", DEFAULT_SUMMARY_PROMPT)


def format_agent_descriptions(descriptors: Iterable) -> str:
    """One `id:description` line per agent, as shown to the classifier."""
    lines: List[str] = []
    for descriptor in descriptors:
        lines.append(f"{descriptor.id}:{descriptor.description}")
    return "\n\n".join(lines)


def format_history(messages: Iterable) -> str:
    """Render conversation messages as `role: text` lines."""
    lines: List[str] = []
    for message in messages:
        role = getattr(message.role, "value", message.role)
        lines.append(f"{role}: {message.text}")
    return "\n".join(lines)
