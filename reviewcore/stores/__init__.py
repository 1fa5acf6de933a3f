"""
Stores package initialization

Exports capability interfaces and their in-memory implementations
"""

from .base import (
    ReferenceSource,
    DecisionStore,
    Clock
)

from .memory import (
    InMemoryReferenceSource,
    InMemoryDecisionStore,
    SystemClock,
    FixedClock
)

__all__ = [
    # Interfaces
    'ReferenceSource',
    'DecisionStore',
    'Clock',

    # Implementations
    'InMemoryReferenceSource',
    'InMemoryDecisionStore',
    'SystemClock',
    'FixedClock'
]
