"""Model catalog: which models exist and which provider serves them."""

from typing import Literal

from pydantic import BaseModel

Provider = Literal["openrouter", "gemini", "kimi"]


class ModelPricing(BaseModel):
    """Price in USD per 1M tokens."""

    input: float
    output: float


class AIModel(BaseModel):
    """A model selectable in the client."""

    id: str
    name: str
    provider: Provider
    description: str = ""
    supports_reasoning: bool = False
    supports_tools: bool = True
    context_window: int = 128_000
    pricing: ModelPricing = ModelPricing(input=0.0, output=0.0)


DEFAULT_MODEL_ID = "google/gemini-2.5-pro"

AVAILABLE_MODELS: list[AIModel] = [
    AIModel(
        id="google/gemini-2.5-pro",
        name="Gemini 2.5 Pro",
        provider="openrouter",
        description="Latest Gemini model, streams its reasoning",
        supports_reasoning=True,
        context_window=2_000_000,
        pricing=ModelPricing(input=3.5, output=10.5),
    ),
    AIModel(
        id="minimax/minimax-m1",
        name="MiniMax M1",
        provider="openrouter",
        description="High-throughput conversational model",
        context_window=200_000,
        pricing=ModelPricing(input=0.15, output=0.6),
    ),
    AIModel(
        id="anthropic/claude-3.5-sonnet",
        name="Claude 3.5 Sonnet",
        provider="openrouter",
        description="Balanced quality and cost",
        context_window=200_000,
        pricing=ModelPricing(input=3.0, output=15.0),
    ),
    AIModel(
        id="openai/o3",
        name="O3",
        provider="openrouter",
        description="Reasoning model",
        supports_reasoning=True,
        context_window=200_000,
        pricing=ModelPricing(input=15.0, output=60.0),
    ),
    AIModel(
        id="openai/gpt-4o",
        name="GPT-4o",
        provider="openrouter",
        description="Multimodal model",
        context_window=128_000,
        pricing=ModelPricing(input=2.5, output=10.0),
    ),
    AIModel(
        id="meta-llama/llama-3.3-70b-instruct",
        name="Llama 3.3 70B",
        provider="openrouter",
        description="Open-weights model",
        context_window=131_072,
        pricing=ModelPricing(input=0.64, output=0.64),
    ),
    AIModel(
        id="gemini-2.5-pro",
        name="Gemini 2.5 Pro (Google AI)",
        provider="gemini",
        description="Gemini through the official Google API",
        supports_reasoning=True,
        supports_tools=False,
        context_window=1_048_576,
        pricing=ModelPricing(input=1.25, output=10.0),
    ),
    AIModel(
        id="kimi-k2-0711-preview",
        name="Kimi K2",
        provider="kimi",
        description="Moonshot Kimi K2",
        supports_tools=False,
        context_window=128_000,
        pricing=ModelPricing(input=0.6, output=2.5),
    ),
]


def get_model(model_id: str) -> AIModel:
    """Look up a catalog entry by id.

    Raises:
        ValueError: If the model is not in the catalog
    """
    for model in AVAILABLE_MODELS:
        if model.id == model_id:
            return model
    raise ValueError(f"Unknown model: {model_id}")
