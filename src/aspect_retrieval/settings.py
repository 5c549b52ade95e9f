from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(slots=True)
class RetrievalSettings:
    """Runtime configuration for passage retrieval and query encoding."""

    thres_in: float = 0.8
    thres_out: float = 0.6
    num_candidates: int = 64
    max_workers: int = 4
    embedding_model: str = "text-embedding-3-small"

    def __post_init__(self) -> None:
        if self.thres_out > self.thres_in:
            raise ValueError(
                f"thres_out must not exceed thres_in, but got: thres_out={self.thres_out}, thres_in={self.thres_in}"
            )
        if self.num_candidates <= 0:
            raise ValueError(f"num_candidates must be positive, but got: {self.num_candidates}")
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, but got: {self.max_workers}")


def _env_number(key: str, default: float | int, cast: type):
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return cast(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {key} must be a number, but got: {value}") from exc


def load_settings() -> RetrievalSettings:
    """Load environment-backed settings and return a validated config object.

    Returns:
        `RetrievalSettings` with `.env` and environment overrides applied.
    """
    load_dotenv()
    defaults = RetrievalSettings()
    return RetrievalSettings(
        thres_in=_env_number("RETRIEVAL_THRES_IN", defaults.thres_in, float),
        thres_out=_env_number("RETRIEVAL_THRES_OUT", defaults.thres_out, float),
        num_candidates=_env_number("RETRIEVAL_NUM_CANDIDATES", defaults.num_candidates, int),
        max_workers=_env_number("RETRIEVAL_MAX_WORKERS", defaults.max_workers, int),
        embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", defaults.embedding_model),
    )
