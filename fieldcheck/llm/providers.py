"""
Provider specifications: model ids, output limits and token prices.
"""

from dataclasses import dataclass

from fieldcheck.domain.models import LLMProvider

TOKENS_PER_MILLION = 1_000_000


@dataclass(frozen=True)
class ProviderSpec:
    model: str
    max_tokens: int
    cost_per_million_input: float
    cost_per_million_output: float

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        """Monetary cost (USD) of a call with the given token usage."""
        return (
            input_tokens * self.cost_per_million_input
            + output_tokens * self.cost_per_million_output
        ) / TOKENS_PER_MILLION


PROVIDER_SPECS: dict[LLMProvider, ProviderSpec] = {
    LLMProvider.ANTHROPIC_CLAUDE_OPUS: ProviderSpec("claude-opus-4-5-20251101", 64000, 5.00, 25.00),
    LLMProvider.ANTHROPIC_CLAUDE_SONNET: ProviderSpec("claude-sonnet-4-5-20251101", 64000, 3.00, 15.00),
    LLMProvider.ANTHROPIC_CLAUDE_HAIKU: ProviderSpec("claude-haiku-4-5-20251101", 64000, 1.00, 5.00),
    LLMProvider.OPENAI_GPT5: ProviderSpec("gpt-5.2", 32000, 1.75, 14.00),
    LLMProvider.OPENAI_GPT5_MINI: ProviderSpec("gpt-5-mini", 32000, 0.25, 2.00),
}


def get_provider_spec(provider: LLMProvider) -> ProviderSpec:
    return PROVIDER_SPECS[LLMProvider(provider)]
