"""
Configuration Module

Central configuration for the review core: deduplication thresholds,
similarity scorer selection, worker counts and logging.
"""

import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.similarity import available_scorers
from .models.domain import PrismaFlowCounts, ScreeningPhase, ScreeningVerdict


class Settings(BaseSettings):
    """Settings loaded from environment variables (REVIEWCORE_ prefix) or .env"""

    # ===== Deduplication Settings =====
    title_similarity_threshold: float = 0.92
    similarity_scorer: str = "token_bigram"  # token_bigram, sequence, tfidf
    dedup_max_workers: int = 4
    use_doi_matching: bool = True
    use_pmid_matching: bool = True
    use_fuzzy_matching: bool = True

    # ===== Logging =====
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = SettingsConfigDict(
        env_prefix="REVIEWCORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("similarity_scorer")
    @classmethod
    def _known_scorer(cls, value: str) -> str:
        name = value.strip().lower()
        if name not in SIMILARITY_SCORERS:
            raise ValueError(f"similarity_scorer must be one of {SIMILARITY_SCORERS}, got '{value}'")
        return name


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance

    Returns:
        Settings instance
    """
    return Settings()


def configure_logging(settings: Settings = None) -> None:
    """Apply the configured log level and format to the root logger"""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format
    )


# ===== Constants =====

# Screening phases
SCREENING_PHASES = [phase.value for phase in ScreeningPhase]

# Screening verdicts
SCREENING_VERDICTS = [verdict.value for verdict in ScreeningVerdict]

# PRISMA flow stages
PRISMA_STAGES = list(PrismaFlowCounts().to_dict())

# Similarity scorers selectable by name
SIMILARITY_SCORERS = available_scorers()
