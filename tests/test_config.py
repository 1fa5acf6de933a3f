import logging

import pytest
from pydantic import ValidationError

from reviewcore.config import (
    PRISMA_STAGES,
    SCREENING_PHASES,
    SCREENING_VERDICTS,
    SIMILARITY_SCORERS,
    Settings,
    configure_logging,
    get_settings,
)
from reviewcore.core import Deduplicator, SequenceRatioScorer, available_scorers, build_scorer
from reviewcore.models import PrismaFlowCounts, ScreeningPhase, ScreeningVerdict


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch) -> None:
    monkeypatch.delenv("REVIEWCORE_TITLE_SIMILARITY_THRESHOLD", raising=False)
    settings = Settings(_env_file=None)

    assert settings.title_similarity_threshold == 0.92
    assert settings.similarity_scorer == "token_bigram"
    assert settings.use_doi_matching is True


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("REVIEWCORE_TITLE_SIMILARITY_THRESHOLD", "0.85")
    monkeypatch.setenv("REVIEWCORE_SIMILARITY_SCORER", "sequence")
    monkeypatch.setenv("REVIEWCORE_USE_PMID_MATCHING", "false")

    settings = get_settings()

    assert settings.title_similarity_threshold == 0.85
    assert settings.similarity_scorer == "sequence"
    assert settings.use_pmid_matching is False


def test_get_settings_is_cached() -> None:
    assert get_settings() is get_settings()


def test_deduplicator_from_settings() -> None:
    settings = Settings(_env_file=None, similarity_scorer="sequence", title_similarity_threshold=0.8)

    dedup = Deduplicator.from_settings(settings)

    assert isinstance(dedup.scorer, SequenceRatioScorer)
    assert dedup.title_threshold == 0.8


def test_constants_follow_their_sources() -> None:
    assert SCREENING_PHASES == [phase.value for phase in ScreeningPhase]
    assert SCREENING_VERDICTS == [verdict.value for verdict in ScreeningVerdict]
    assert PRISMA_STAGES == list(PrismaFlowCounts().to_dict())
    assert SIMILARITY_SCORERS == available_scorers() == ["token_bigram", "sequence", "tfidf"]


def test_unknown_scorer_setting_rejected() -> None:
    with pytest.raises(ValidationError, match="similarity_scorer"):
        Settings(_env_file=None, similarity_scorer="levenshtein")


def test_scorer_setting_is_case_insensitive() -> None:
    assert Settings(_env_file=None, similarity_scorer=" TFIDF ").similarity_scorer == "tfidf"


@pytest.mark.parametrize("name", SIMILARITY_SCORERS)
def test_every_listed_scorer_builds(name) -> None:
    assert build_scorer(name).score("telehealth follow up", "telehealth follow up") == pytest.approx(1.0)


def test_configure_logging_applies_level(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    configure_logging(Settings(_env_file=None, log_level="debug"))

    assert calls[0]["level"] == logging.DEBUG
    assert "%(levelname)s" in calls[0]["format"]
