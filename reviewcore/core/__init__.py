"""
Core package initialization

Exports the deduplication engine, screening state machine and PRISMA aggregator
"""

from .normalizer import (
    IdentityKey,
    build_identity_key,
    normalize_doi,
    normalize_pmid,
    normalize_title,
    normalize_surname
)

from .similarity import (
    SimilarityScorer,
    TokenBigramScorer,
    SequenceRatioScorer,
    TfidfCosineScorer,
    available_scorers,
    build_scorer
)

from .deduplicator import (
    Deduplicator,
    DeduplicationResult,
    DuplicateMatch
)

from .screener import ScreeningStateMachine

from .prisma import (
    compute_flow_counts,
    exclusion_reasons,
    PrismaReporter
)

__all__ = [
    # Normalization
    'IdentityKey',
    'build_identity_key',
    'normalize_doi',
    'normalize_pmid',
    'normalize_title',
    'normalize_surname',

    # Similarity
    'SimilarityScorer',
    'TokenBigramScorer',
    'SequenceRatioScorer',
    'TfidfCosineScorer',
    'available_scorers',
    'build_scorer',

    # Deduplication
    'Deduplicator',
    'DeduplicationResult',
    'DuplicateMatch',

    # Screening
    'ScreeningStateMachine',

    # PRISMA
    'compute_flow_counts',
    'exclusion_reasons',
    'PrismaReporter'
]
