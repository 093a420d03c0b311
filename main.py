from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from squad.agents.anthropic_agent import AnthropicAgent
from squad.agents.base import Agent
from squad.agents.openai_agent import OpenAIAgent
from squad.agents.perplexity_agent import GrokAgent, PerplexityAgent
from squad.classifiers.anthropic_classifier import AnthropicClassifier
from squad.classifiers.base import Classifier
from squad.classifiers.openai_classifier import OpenAIClassifier
from squad.config import AgentSquadConfig, load_app_config
from squad.core.errors import AgentSquadError
from squad.core.orchestrator import Orchestrator
from squad.core.prompts import PromptManager
from squad.storage.base import ChatStorage
from squad.storage.in_memory import InMemoryChatStorage
from squad.storage.qdrant_storage import QdrantChatStorage
from squad.utils.embeddings import OpenAIEmbedder
from squad.utils.summarizer import LLMSummarizer

AGENT_TYPES = {
    "openai": OpenAIAgent,
    "perplexity": PerplexityAgent,
    "grok": GrokAgent,
    "anthropic": AnthropicAgent,
}

CLASSIFIER_TYPES = {
    "anthropic": AnthropicClassifier,
    "openai": OpenAIClassifier,
}


# --------------------------------------------------------------------------------------
# Builders
# --------------------------------------------------------------------------------------


def build_agents(cfg: Dict[str, Any], prompts: PromptManager) -> Dict[str, Agent]:
    """
    Build all enabled agents from the `agents:` section.

    Each entry is keyed by agent id and must specify a `type` (one of
    AGENT_TYPES), a `name` and a non-empty `description`. Entries with
    `enabled: false` are skipped.
    """
    agents: Dict[str, Agent] = {}
    for agent_id, acfg in (cfg.get("agents") or {}).items():
        if not acfg.get("enabled", True):
            continue
        agent_type = acfg.get("type", "openai")
        agent_cls = AGENT_TYPES.get(agent_type)
        if agent_cls is None:
            raise ValueError(f"Unknown agent type {agent_type!r} for agent {agent_id!r}.")
        agents[agent_id] = agent_cls.from_config(agent_id, acfg, prompts=prompts)
    return agents


def build_classifier(cfg: Dict[str, Any], prompts: PromptManager) -> Classifier:
    ccfg = cfg.get("classifier") or {}
    classifier_type = ccfg.get("type", "anthropic")
    classifier_cls = CLASSIFIER_TYPES.get(classifier_type)
    if classifier_cls is None:
        raise ValueError(f"Unknown classifier type {classifier_type!r}.")
    return classifier_cls.from_config(ccfg, prompts=prompts)


def build_storage(cfg: Dict[str, Any], prompts: PromptManager) -> ChatStorage:
    """
    Build the chat storage backend from the `storage:` section.

    `type: memory` (default) keeps history in process; an optional
    `summarizer:` block folds trimmed turns into a running summary.
    `type: qdrant` stores messages in a Qdrant collection using OpenAI
    embeddings configured under `embeddings:`.
    """
    scfg = cfg.get("storage") or {}
    storage_type = scfg.get("type", "memory")
    if storage_type == "memory":
        summarizer: Optional[LLMSummarizer] = None
        if scfg.get("summarizer"):
            summarizer = LLMSummarizer.from_config(scfg["summarizer"], prompts=prompts)
        return InMemoryChatStorage(summarizer=summarizer)
    if storage_type == "qdrant":
        embedder = OpenAIEmbedder.from_config(scfg.get("embeddings") or {})
        return QdrantChatStorage.from_config(scfg, embed=embedder)
    raise ValueError(f"Unknown storage type {storage_type!r}.")


def build_orchestrator(cfg: Dict[str, Any]) -> Orchestrator:
    """
    Build a fully wired Orchestrator from the raw config dict.
    """
    prompts = PromptManager(cfg.get("prompts", {}))
    agents = build_agents(cfg, prompts)

    orchestrator = Orchestrator(
        options=AgentSquadConfig.from_dict(cfg.get("orchestrator")),
        storage=build_storage(cfg, prompts),
        classifier=build_classifier(cfg, prompts),
    )
    for agent in agents.values():
        orchestrator.add_agent(agent)

    default_id = cfg.get("default_agent")
    if default_id:
        if default_id not in agents:
            raise ValueError(f"default_agent {default_id!r} is not a configured agent.")
        orchestrator.set_default_agent(agents[default_id])
    return orchestrator


# --------------------------------------------------------------------------------------
# Request handling
# --------------------------------------------------------------------------------------


async def handle_request(
    orchestrator: Orchestrator,
    text: str,
    user_id: str,
    session_id: str,
    stream: bool = True,
) -> None:
    """Route one request and print the answer (fragments as they arrive when streaming)."""
    try:
        response = await orchestrator.route_request(
            text, user_id, session_id, stream_response=stream
        )
        print(f"[{response.metadata.agent_name}]", end=" ", flush=True)
        if response.streaming:
            async for chunk in response.output:
                print(chunk, end="", flush=True)
            print()
        else:
            print(response.output.text)
    except AgentSquadError as exc:
        logging.getLogger(__name__).debug("Request failed", exc_info=exc)
        print(exc.user_message)


async def interactive_chat(orchestrator: Orchestrator, user_id: str, session_id: str) -> None:
    """
    Simple terminal chat loop.

    The session keeps running until:
      - user types /exit or /quit
      - or presses Ctrl+C.
    """
    print("\n[Interactive chat started]")
    print("Agents:", ", ".join(orchestrator.get_all_agents()) or "(none)")
    print("Type /exit or press Ctrl+C to end the session.\n")

    loop = asyncio.get_running_loop()
    while True:
        user_input = (await loop.run_in_executor(None, input, "You> ")).strip()
        if not user_input:
            continue
        if user_input.lower() in {"/exit", "/quit"}:
            print("Bye")
            break
        await handle_request(orchestrator, user_input, user_id, session_id)


# --------------------------------------------------------------------------------------
# CLI
# --------------------------------------------------------------------------------------


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Multi-agent request router (route, interactive chat, agent listing)."
    )
    parser.add_argument(
        "--config",
        required=True,
        help="Path to config.yaml file.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )
    parser.add_argument("--user", default="local-user", help="User id for the conversation.")
    parser.add_argument("--session", default="local-session", help="Session id for the conversation.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    route_parser = subparsers.add_parser("route", help="Route a single request.")
    route_parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Wait for the complete answer instead of streaming fragments.",
    )
    route_parser.add_argument("text", help="User input to route.")

    subparsers.add_parser("chat", help="Interactive chat session.")
    subparsers.add_parser("agents", help="List configured agents.")

    return parser.parse_args(argv)


def main() -> None:
    # Load environment variables from .env (if present)
    load_dotenv()

    args = parse_args(sys.argv[1:])
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = load_app_config(args.config)
    orchestrator = build_orchestrator(config)

    if args.command == "agents":
        for agent_id, info in orchestrator.get_all_agents().items():
            print(f"{agent_id}: {info['name']} - {info['description']}")
        return

    if args.command == "route":
        asyncio.run(
            handle_request(
                orchestrator,
                args.text,
                args.user,
                args.session,
                stream=not args.no_stream,
            )
        )
        return

    if args.command == "chat":
        try:
            asyncio.run(interactive_chat(orchestrator, args.user, args.session))
        except (KeyboardInterrupt, EOFError):
            print("\n[Session interrupted by user, exiting chat]")
        return

    # Should never reach here
    raise SystemExit(f"Unknown command: {args.command!r}")


if __name__ == "__main__":
    main()
