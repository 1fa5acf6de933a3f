"""
Similarity Scorers - Pluggable title similarity

Every scorer takes two normalized strings and returns a score in [0, 1].
The deduplication engine only depends on the SimilarityScorer protocol,
so scorers can be swapped without touching the engine.

Available scorers:
1. token_bigram - Jaccard over content tokens + Dice over character bigrams (default)
2. sequence - difflib SequenceMatcher ratio
3. tfidf - TF-IDF cosine over character n-grams (scikit-learn)
"""

from difflib import SequenceMatcher
from typing import FrozenSet, List, Protocol
import logging

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

logger = logging.getLogger(__name__)


STOP_WORDS: FrozenSet[str] = frozenset({
    "a", "an", "the", "of", "in", "on", "at", "to", "for", "and", "or", "but",
    "is", "are", "was", "were", "with", "by", "from", "into", "using", "via"
})


class SimilarityScorer(Protocol):
    """Similarity capability used by the deduplication engine"""

    def score(self, left: str, right: str) -> float:
        ...


class TokenBigramScorer:
    """
    Weighted blend of token Jaccard and character-bigram Dice

    score = token_weight * jaccard(tokens) + (1 - token_weight) * dice(bigrams)
    Tokens shorter than 3 characters and stop words are ignored.
    """

    def __init__(self, token_weight: float = 0.6):
        if not 0.0 <= token_weight <= 1.0:
            raise ValueError(f"token_weight must be within [0, 1], got {token_weight}")
        self.token_weight = token_weight

    def score(self, left: str, right: str) -> float:
        if not left or not right:
            return 0.0
        if left == right:
            return 1.0

        jaccard = self._jaccard(self._tokens(left), self._tokens(right))
        dice = self._dice(self._compact(left), self._compact(right))
        return self.token_weight * jaccard + (1 - self.token_weight) * dice

    @staticmethod
    def _tokens(text: str) -> FrozenSet[str]:
        return frozenset(
            token for token in text.split()
            if len(token) > 2 and token not in STOP_WORDS
        )

    @staticmethod
    def _compact(text: str) -> str:
        return "".join(ch for ch in text if ch.isalnum())

    @staticmethod
    def _jaccard(left: FrozenSet[str], right: FrozenSet[str]) -> float:
        union = len(left | right)
        if union == 0:
            return 0.0
        return len(left & right) / union

    @staticmethod
    def _dice(left: str, right: str) -> float:
        if len(left) < 2 or len(right) < 2:
            return 0.0
        left_bigrams = {left[i:i + 2] for i in range(len(left) - 1)}
        right_bigrams = {right[i:i + 2] for i in range(len(right) - 1)}
        return 2.0 * len(left_bigrams & right_bigrams) / (len(left_bigrams) + len(right_bigrams))


class SequenceRatioScorer:
    """difflib SequenceMatcher ratio"""

    def score(self, left: str, right: str) -> float:
        if not left or not right:
            return 0.0
        return SequenceMatcher(None, left, right).ratio()


class TfidfCosineScorer:
    """
    TF-IDF cosine similarity over character n-grams

    The vectorizer is fitted on the pair being compared, which keeps the
    scorer stateless and safe to share between worker threads.
    """

    def __init__(self, ngram_range=(2, 4)):
        self.ngram_range = ngram_range

    def score(self, left: str, right: str) -> float:
        if not left or not right:
            return 0.0
        if left == right:
            return 1.0

        vectorizer = TfidfVectorizer(analyzer='char_wb', ngram_range=self.ngram_range, lowercase=False)
        tfidf_matrix = vectorizer.fit_transform([left, right])
        similarity = float(cosine_similarity(tfidf_matrix[0], tfidf_matrix[1])[0][0])
        return min(max(similarity, 0.0), 1.0)


_SCORERS = {
    'token_bigram': TokenBigramScorer,
    'sequence': SequenceRatioScorer,
    'tfidf': TfidfCosineScorer,
}


def available_scorers() -> List[str]:
    """Scorer names accepted by build_scorer"""
    return list(_SCORERS)


def build_scorer(name: str) -> SimilarityScorer:
    """
    Create a scorer by configured name

    Raises:
        ValueError: unknown scorer name
    """
    try:
        scorer_cls = _SCORERS[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown similarity scorer '{name}', expected one of {sorted(_SCORERS)}") from None

    logger.debug(f"Using {scorer_cls.__name__} for title similarity")
    return scorer_cls()
