"""
Unit tests for agent implementations

OpenAI-compatible and Anthropic agents are exercised against
AsyncMock-backed clients; no network access is needed.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from squad.agents.anthropic_agent import AnthropicAgent
from squad.agents.base import LLMAgent, Retriever, generate_key_from_name
from squad.agents.openai_agent import OpenAIAgent
from squad.agents.perplexity_agent import GrokAgent, PerplexityAgent
from squad.core.errors import ProviderError
from squad.core.prompts import PromptManager
from squad.core.types import ConversationHistory, ConversationMessage, ParticipantRole

from tests.conftest import StubAgent


async def async_iter(items):
    for item in items:
        yield item


def openai_client(response):
    create = AsyncMock(return_value=response)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create))), create


def completion(text):
    return SimpleNamespace(
        id="chatcmpl_1",
        model="gpt-test",
        usage={"total_tokens": 7},
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
    )


def stream_chunk(text):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


def history(*pairs):
    messages = []
    for question, answer in pairs:
        messages.append(ConversationMessage.from_text(ParticipantRole.USER, question))
        messages.append(ConversationMessage.from_text(ParticipantRole.ASSISTANT, answer))
    return ConversationHistory(messages=messages)


class StaticRetriever(Retriever):
    async def retrieve_and_combine_results(self, text):
        return "Warranty lasts two years."


class TestAgentBase:
    """Test identity and validation"""

    def test_generate_key_from_name(self):
        assert generate_key_from_name("Tech Agent") == "tech-agent"
        assert generate_key_from_name("  Billing & Refunds! ") == "billing-refunds"

    def test_id_derived_from_name(self):
        assert StubAgent("Tech Agent", "Fixes computers.").id == "tech-agent"

    def test_empty_description_rejected(self):
        with pytest.raises(ValueError):
            StubAgent("Tech Agent", "   ")

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            StubAgent("", "Fixes computers.")

    def test_descriptor(self):
        descriptor = StubAgent("Tech Agent", "Fixes computers.", agent_id="tech").descriptor()
        assert (descriptor.id, descriptor.name, descriptor.description) == ("tech", "Tech Agent", "Fixes computers.")


class TestOpenAIAgent:
    """Test message building and both response modes"""

    @pytest.mark.asyncio
    async def test_complete_response(self):
        client, create = openai_client(completion("Reboot it."))
        agent = OpenAIAgent("Tech Agent", "Fixes computers.", agent_id="tech", client=client)

        output = await agent.process_request("laptop dead", "u1", "s1", history(("hi", "hello")))

        assert isinstance(output, ConversationMessage)
        assert output.text == "Reboot it."
        assert output.metadata["model_stats"][0]["from"] == "agent-openai"
        request = create.await_args.kwargs
        assert request["model"] == "gpt-4o-mini"
        assert request["max_tokens"] == 4096
        assert [m["role"] for m in request["messages"]] == ["system", "user", "assistant", "user"]
        assert request["messages"][-1] == {"role": "user", "content": "laptop dead"}
        assert "You are a Tech Agent. Fixes computers." in request["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_streaming_response(self):
        chunks = [stream_chunk("Re"), SimpleNamespace(choices=[]), stream_chunk(None), stream_chunk("boot")]
        client, create = openai_client(async_iter(chunks))
        agent = OpenAIAgent("Tech Agent", "Fixes computers.", client=client, streaming=True)

        output = await agent.process_request("laptop dead", "u1", "s1", ConversationHistory())

        assert [fragment async for fragment in output] == ["Re", "boot"]
        assert create.await_args.kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_custom_prompt_variables_and_context(self):
        client, create = openai_client(completion("ok"))
        agent = OpenAIAgent(
            "Tech Agent", "Fixes computers.", client=client, retriever=StaticRetriever()
        )
        agent.set_system_prompt("You are {{AGENT_NAME}}. Rules:\n{{RULES}}", {"RULES": ["Be brief", "Be kind"]})
        chat = ConversationHistory(summary="User owns a ThinkPad.")

        await agent.process_request("warranty?", "u1", "s1", chat)

        system = create.await_args.kwargs["messages"][0]["content"]
        assert system.startswith("You are Tech Agent. Rules:\nBe brief\nBe kind")
        assert "Warranty lasts two years." in system
        assert "User owns a ThinkPad." in system

    @pytest.mark.asyncio
    async def test_provider_failure(self):
        create = AsyncMock(side_effect=RuntimeError("timeout"))
        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        agent = OpenAIAgent("Tech Agent", "Fixes computers.", client=client)
        with pytest.raises(ProviderError):
            await agent.process_request("hi", "u1", "s1", ConversationHistory())

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        client, _ = openai_client(SimpleNamespace(id="x", model="m", usage=None, choices=[]))
        agent = OpenAIAgent("Tech Agent", "Fixes computers.", client=client)
        with pytest.raises(ProviderError):
            await agent.process_request("hi", "u1", "s1", ConversationHistory())

    @pytest.mark.asyncio
    async def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("SQUAD_TEST_MISSING_KEY", raising=False)
        agent = OpenAIAgent("Tech Agent", "Fixes computers.", api_key_env="SQUAD_TEST_MISSING_KEY")
        with pytest.raises(ProviderError):
            await agent.process_request("hi", "u1", "s1", ConversationHistory())

    def test_from_config(self):
        agent = OpenAIAgent.from_config(
            "tech",
            {
                "name": "Tech Agent",
                "description": "Fixes computers.",
                "model": "gpt-4o",
                "streaming": True,
                "save_chat": False,
                "inference": {"temperature": 0.2},
                "system_prompt": "Custom {{TONE}}",
                "variables": {"TONE": "calm"},
            },
            prompts=PromptManager(),
        )
        assert agent.id == "tech"
        assert agent.model == "gpt-4o"
        assert agent.is_streaming_enabled()
        assert agent.save_chat is False
        assert agent.inference_config == {"max_tokens": 4096, "temperature": 0.2}
        assert agent.system_prompt() == "Custom calm"

    def test_from_config_requires_description(self):
        with pytest.raises(ValueError):
            OpenAIAgent.from_config("tech", {"name": "Tech Agent"})


class TestCompatibleVendors:
    def test_perplexity_defaults(self):
        agent = PerplexityAgent("Research Agent", "Searches the web.")
        assert agent.base_url == "https://api.perplexity.ai"
        assert agent.api_key_env == "PERPLEXITY_API_KEY"
        assert agent.model == "sonar"

    def test_grok_defaults(self):
        agent = GrokAgent("Grok Agent", "Answers with wit.")
        assert agent.base_url == "https://api.x.ai/v1"
        assert agent.api_key_env == "XAI_API_KEY"


class TestAnthropicAgent:
    """Test Claude request shaping and response mapping"""

    @pytest.mark.asyncio
    async def test_complete_response(self):
        response = SimpleNamespace(
            id="msg_1",
            model="claude-test",
            usage={"output_tokens": 3},
            content=[
                SimpleNamespace(type="text", text="Refund issued."),
                SimpleNamespace(type="tool_use", id="tu_1", name="lookup", input={"order": 7}),
            ],
        )
        create = AsyncMock(return_value=response)
        client = SimpleNamespace(messages=SimpleNamespace(create=create))
        agent = AnthropicAgent("Billing Agent", "Handles refunds.", agent_id="billing", client=client)

        output = await agent.process_request("refund", "u1", "s1", history(("hi", "hello")))

        assert output.text == "Refund issued."
        assert output.content[1] == {"toolUse": {"toolUseId": "tu_1", "name": "lookup", "input": {"order": 7}}}
        request = create.await_args.kwargs
        assert request["max_tokens"] == 2048
        assert "You are a Billing Agent." in request["system"]
        assert [m["role"] for m in request["messages"]] == ["user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_streaming_response(self):
        events = [
            SimpleNamespace(type="message_start"),
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(text="Refund ")),
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(text="issued.")),
            SimpleNamespace(type="message_stop"),
        ]
        create = AsyncMock(return_value=async_iter(events))
        client = SimpleNamespace(messages=SimpleNamespace(create=create))
        agent = AnthropicAgent("Billing Agent", "Handles refunds.", client=client, streaming=True)

        output = await agent.process_request("refund", "u1", "s1", ConversationHistory())

        assert [fragment async for fragment in output] == ["Refund ", "issued."]

    @pytest.mark.asyncio
    async def test_stream_failure(self):
        async def broken():
            yield SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(text="Ref"))
            raise RuntimeError("connection reset")

        create = AsyncMock(return_value=broken())
        client = SimpleNamespace(messages=SimpleNamespace(create=create))
        agent = AnthropicAgent("Billing Agent", "Handles refunds.", client=client, streaming=True)

        output = await agent.process_request("refund", "u1", "s1", ConversationHistory())
        with pytest.raises(ProviderError):
            async for _ in output:
                pass

    @pytest.mark.asyncio
    async def test_tool_only_turn_left_out_of_history(self):
        response = SimpleNamespace(id="msg_2", model="claude-test", usage={}, content=[SimpleNamespace(type="text", text="Done.")])
        create = AsyncMock(return_value=response)
        client = SimpleNamespace(messages=SimpleNamespace(create=create))
        agent = AnthropicAgent("Billing Agent", "Handles refunds.", client=client)
        chat = history(("refund order 7", "Looking it up."))
        chat.messages.append(
            ConversationMessage(
                role=ParticipantRole.ASSISTANT,
                content=[{"toolUse": {"toolUseId": "tu_1", "name": "lookup", "input": {"order": 7}}}],
            )
        )

        await agent.process_request("any news?", "u1", "s1", chat)

        messages = create.await_args.kwargs["messages"]
        assert all(m["content"] for m in messages)
        assert messages == [
            {"role": "user", "content": "refund order 7"},
            {"role": "assistant", "content": "Looking it up."},
            {"role": "user", "content": "any news?"},
        ]


class TestLLMAgent:
    """Test the system prompt handling shared by the vendor agents"""

    @pytest.mark.parametrize("agent_cls", [OpenAIAgent, AnthropicAgent])
    def test_vendor_agents_share_prompt_handling(self, agent_cls):
        agent = agent_cls("Tech Agent", "Fixes computers.", client=SimpleNamespace())
        assert isinstance(agent, LLMAgent)
        agent.set_system_prompt("{{AGENT_NAME}} speaks {{TONE}}", {"TONE": "calmly"})
        assert agent.system_prompt() == "Tech Agent speaks calmly"

    @pytest.mark.asyncio
    async def test_build_system_prompt_appends_context_and_summary(self):
        agent = AnthropicAgent("Tech Agent", "Fixes computers.", client=SimpleNamespace(), retriever=StaticRetriever())
        agent.set_system_prompt("Base prompt")

        prompt = await agent.build_system_prompt("warranty?", ConversationHistory(summary="Owns a ThinkPad."))

        assert prompt.startswith("Base prompt\nHere is the context")
        assert prompt.index("Warranty lasts two years.") < prompt.index("Owns a ThinkPad.")

    def test_max_tokens_default_per_vendor(self):
        assert OpenAIAgent("A", "d").inference_config["max_tokens"] == 4096
        assert AnthropicAgent("A", "d").inference_config["max_tokens"] == 2048
        assert AnthropicAgent("A", "d", inference_config={"max_tokens": 100}).inference_config["max_tokens"] == 100
