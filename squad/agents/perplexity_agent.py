"""
Perplexity and Grok agent implementations.

Both vendors expose OpenAI-compatible Chat Completions endpoints, so
these agents reuse OpenAIAgent with a custom base URL and environment
variable for the API key.
"""

from squad.agents.openai_agent import OpenAIAgent


class PerplexityAgent(OpenAIAgent):
    """
    PerplexityAgent uses Perplexity's OpenAI-compatible Chat Completions API.
    """

    provider_label = "perplexity"
    default_api_key_env = "PERPLEXITY_API_KEY"
    default_base_url = "https://api.perplexity.ai"
    default_model = "sonar"


class GrokAgent(OpenAIAgent):
    """
    GrokAgent uses the x.ai OpenAI-compatible Chat Completions API.
    """

    provider_label = "grok"
    default_api_key_env = "XAI_API_KEY"
    default_base_url = "https://api.x.ai/v1"
    default_model = "grok-2-latest"
