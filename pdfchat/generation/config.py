"""Configuration for answer generation."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class GenerationConfig:
    """Settings for streamed answer generation."""

    max_tokens: int = 1024
    temperature: float = 0.3

    @classmethod
    def from_env(cls) -> "GenerationConfig":
        return cls(
            max_tokens=int(os.getenv("GENERATION_MAX_TOKENS", "1024")),
            temperature=float(os.getenv("GENERATION_TEMPERATURE", "0.3")),
        )
