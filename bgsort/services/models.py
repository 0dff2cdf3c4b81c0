from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI

from bgsort.core.config import settings


@dataclass
class ModelStore:
    client: Any
    model: str
    max_tokens: int


def load_models() -> ModelStore:
    client = None
    if settings.openai_api_key:
        client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.openai_timeout)
    return ModelStore(
        client=client,
        model=settings.openai_model,
        max_tokens=settings.openai_max_tokens,
    )
