"""
Unit tests for the CLI wiring in main.py
"""

from pathlib import Path

import pytest

import main
from squad.agents.anthropic_agent import AnthropicAgent
from squad.agents.openai_agent import OpenAIAgent
from squad.classifiers.anthropic_classifier import AnthropicClassifier
from squad.classifiers.openai_classifier import OpenAIClassifier
from squad.config import load_app_config
from squad.core.prompts import PromptManager
from squad.storage.in_memory import InMemoryChatStorage
from squad.utils.summarizer import LLMSummarizer

from tests.conftest import ScriptedClassifier, StreamingStubAgent

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "config.example.yaml"

BASE_CONFIG = {
    "orchestrator": {"max_retries": 1, "max_message_pairs_per_agent": 5},
    "classifier": {"type": "openai", "model": "gpt-4o-mini"},
    "agents": {
        "tech": {"type": "openai", "name": "Tech Agent", "description": "Fixes computers."},
        "billing": {"type": "anthropic", "name": "Billing Agent", "description": "Handles refunds."},
        "research": {"type": "perplexity", "enabled": False, "name": "Research", "description": "Web."},
    },
    "default_agent": "tech",
}


class TestBuilders:
    """Test construction of the orchestrator from a config dict"""

    def test_build_orchestrator(self):
        orchestrator = main.build_orchestrator(BASE_CONFIG)

        assert set(orchestrator.agents) == {"tech", "billing"}
        assert isinstance(orchestrator.agents["tech"], OpenAIAgent)
        assert isinstance(orchestrator.agents["billing"], AnthropicAgent)
        assert isinstance(orchestrator.classifier, OpenAIClassifier)
        assert isinstance(orchestrator.storage, InMemoryChatStorage)
        assert orchestrator.get_default_agent().id == "tech"
        assert orchestrator.config.MAX_RETRIES == 1
        assert orchestrator.classifier.get_agent_by_id("billing") is orchestrator.agents["billing"]

    def test_example_config_builds(self):
        orchestrator = main.build_orchestrator(load_app_config(str(EXAMPLE_CONFIG)))
        assert isinstance(orchestrator.classifier, AnthropicClassifier)
        assert "research" not in orchestrator.agents

    def test_unknown_agent_type(self):
        with pytest.raises(ValueError, match="Unknown agent type"):
            main.build_agents({"agents": {"x": {"type": "bedrock", "name": "X", "description": "d"}}}, PromptManager())

    def test_unknown_classifier_type(self):
        with pytest.raises(ValueError):
            main.build_classifier({"classifier": {"type": "bedrock"}}, PromptManager())

    def test_unknown_storage_type(self):
        with pytest.raises(ValueError):
            main.build_storage({"storage": {"type": "dynamodb"}}, PromptManager())

    def test_memory_storage_with_summarizer(self):
        storage = main.build_storage({"storage": {"type": "memory", "summarizer": {"model": "gpt-4o-mini"}}}, PromptManager())
        assert isinstance(storage.summarizer, LLMSummarizer)

    def test_default_agent_must_exist(self):
        cfg = dict(BASE_CONFIG, default_agent="research")
        with pytest.raises(ValueError, match="default_agent"):
            main.build_orchestrator(cfg)


class TestParseArgs:
    def test_route(self):
        args = main.parse_args(["--config", "c.yaml", "--user", "ada", "route", "--no-stream", "hello"])
        assert args.command == "route"
        assert args.no_stream is True
        assert args.text == "hello"
        assert args.user == "ada"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main.parse_args(["--config", "c.yaml"])


class TestHandleRequest:
    """Test terminal output for routed requests"""

    @pytest.mark.asyncio
    async def test_streams_fragments(self, capsys):
        agent = StreamingStubAgent("Stream Agent", "Streams replies.", ["Hel", "lo"], agent_id="stream")
        orchestrator = main.Orchestrator(classifier=ScriptedClassifier([("stream", 0.9)]))
        orchestrator.add_agent(agent)

        await main.handle_request(orchestrator, "hi", "u1", "s1")

        assert capsys.readouterr().out == "[Stream Agent] Hello\n"

    @pytest.mark.asyncio
    async def test_prints_user_message_on_error(self, capsys):
        orchestrator = main.Orchestrator(
            options={"classification_error_message": "Try again soon."},
            classifier=ScriptedClassifier([RuntimeError("boom")]),
        )

        await main.handle_request(orchestrator, "hi", "u1", "s1")

        assert capsys.readouterr().out == "Try again soon.\n"
