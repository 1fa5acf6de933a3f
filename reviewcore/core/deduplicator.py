"""
Deduplicator - Duplicate Cluster Detection Engine

Partitions a project's references into duplicate clusters and picks one
primary per cluster.

Strategies:
1. DOI exact matching (highest priority)
2. PMID exact matching
3. Fuzzy title matching between references not already linked by an
   identifier, blocked by (year, first author surname initial) and confirmed
   by year and author overlap

Matches are merged with union-find, so chains of pairwise matches end up in
one cluster. Fuzzy blocks are scored in parallel, but pairs are merged in
sorted order so the clusters never depend on worker scheduling.
"""

from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple
import logging

import pandas as pd

from ..models.domain import DuplicateCluster, DuplicateReason, Reference
from .normalizer import IdentityKey, build_identity_key
from .similarity import SimilarityScorer, TokenBigramScorer, build_scorer

logger = logging.getLogger(__name__)

Pair = Tuple[int, int]
BlockKey = Tuple[str, Optional[int]]


@dataclass(frozen=True)
class DuplicateMatch:
    """One linked pair of references (reference_id_1 < reference_id_2)"""
    reference_id_1: int
    reference_id_2: int
    reasons: FrozenSet[DuplicateReason]
    title_similarity: Optional[float] = None


@dataclass
class DeduplicationResult:
    """Result of deduplication operation"""
    original_count: int
    duplicate_count: int
    final_count: int
    clusters: List[DuplicateCluster] = field(default_factory=list)
    matches: List[DuplicateMatch] = field(default_factory=list)
    strategies_used: List[str] = field(default_factory=list)
    doi_matches: int = 0
    pmid_matches: int = 0
    title_matches: int = 0
    references: Dict[int, Reference] = field(default_factory=dict, repr=False)

    @property
    def primary_ids(self) -> List[int]:
        return [cluster.primary_id for cluster in self.clusters]

    def primaries(self) -> List[Reference]:
        """Primary references, ordered by id"""
        return [self.references[ref_id] for ref_id in sorted(self.primary_ids)]

    def review_dataframe(self) -> pd.DataFrame:
        """Matched pairs with their metadata side by side, for manual review"""
        columns = [
            'reference_id_1', 'reference_id_2', 'reasons', 'title_similarity',
            'title_1', 'title_2', 'year_1', 'year_2', 'doi_1', 'doi_2'
        ]
        rows = []
        for match in self.matches:
            ref1 = self.references.get(match.reference_id_1)
            ref2 = self.references.get(match.reference_id_2)
            rows.append({
                'reference_id_1': match.reference_id_1,
                'reference_id_2': match.reference_id_2,
                'reasons': ", ".join(sorted(reason.value for reason in match.reasons)),
                'title_similarity': match.title_similarity,
                'title_1': ref1.title if ref1 else None,
                'title_2': ref2.title if ref2 else None,
                'year_1': ref1.year if ref1 else None,
                'year_2': ref2.year if ref2 else None,
                'doi_1': ref1.doi if ref1 else None,
                'doi_2': ref2.doi if ref2 else None,
            })
        return pd.DataFrame(rows, columns=columns)

    def generate_report(self) -> str:
        """Human-readable deduplication report"""
        removal_rate = (self.duplicate_count / self.original_count * 100) if self.original_count else 0.0

        report = [
            "=== Deduplication Report ===",
            "",
            f"Original records: {self.original_count}",
            f"Duplicates found: {self.duplicate_count}",
            f"Final unique records: {self.final_count}",
            f"Removal rate: {removal_rate:.1f}%",
            "",
            "Strategies used:",
        ]
        report.extend(f"  - {s}" for s in self.strategies_used)
        report.extend([
            "",
            "Matched pairs by reason:",
            f"  - DOI: {self.doi_matches}",
            f"  - PMID: {self.pmid_matches}",
            f"  - Title: {self.title_matches}",
        ])

        multi = [c for c in self.clusters if c.size > 1]
        if multi:
            report.append("")
            report.append(f"Duplicate clusters ({len(multi)}):")
            for cluster in multi[:10]:
                primary = self.references.get(cluster.primary_id)
                title = primary.title[:80] if primary else ""
                report.append(f"  - primary {cluster.primary_id} {list(cluster.duplicate_ids)}: {title}")

        return "\n".join(report)


class UnionFind:
    """Disjoint sets over reference ids; the smaller root id always wins"""

    def __init__(self, ids: Iterable[int]):
        self._parent = {ref_id: ref_id for ref_id in ids}

    def find(self, ref_id: int) -> int:
        root = ref_id
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[ref_id] != root:
            self._parent[ref_id], ref_id = root, self._parent[ref_id]
        return root

    def union(self, a: int, b: int) -> bool:
        root_a, root_b = self.find(a), self.find(b)
        if root_a == root_b:
            return False
        if root_b < root_a:
            root_a, root_b = root_b, root_a
        self._parent[root_b] = root_a
        return True

    def groups(self) -> Dict[int, Set[int]]:
        groups: Dict[int, Set[int]] = defaultdict(set)
        for ref_id in self._parent:
            groups[self.find(ref_id)].add(ref_id)
        return dict(groups)


class Deduplicator:
    """
    Duplicate cluster detector for systematic review references

    Uses:
    - DOI matching (most reliable)
    - PMID matching
    - Blocked fuzzy title matching with year/author confirmation
    """

    def __init__(
        self,
        scorer: Optional[SimilarityScorer] = None,
        title_threshold: float = 0.92,
        use_doi: bool = True,
        use_pmid: bool = True,
        use_fuzzy: bool = True,
        max_workers: int = 1
    ):
        """
        Initialize deduplicator

        Args:
            scorer: Title similarity scorer (TokenBigramScorer by default)
            title_threshold: Minimum title similarity for a fuzzy match (0-1)
            use_doi: Enable DOI-based matching
            use_pmid: Enable PMID-based matching
            use_fuzzy: Enable blocked fuzzy title matching
            max_workers: Worker threads for scoring fuzzy blocks
        """
        if not 0.0 <= title_threshold <= 1.0:
            raise ValueError(f"title_threshold must be within [0, 1], got {title_threshold}")

        self.scorer = scorer or TokenBigramScorer()
        self.title_threshold = title_threshold
        self.use_doi = use_doi
        self.use_pmid = use_pmid
        self.use_fuzzy = use_fuzzy
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_settings(cls, settings=None) -> "Deduplicator":
        """Build a deduplicator from application settings"""
        if settings is None:
            from ..config import get_settings
            settings = get_settings()

        return cls(
            scorer=build_scorer(settings.similarity_scorer),
            title_threshold=settings.title_similarity_threshold,
            use_doi=settings.use_doi_matching,
            use_pmid=settings.use_pmid_matching,
            use_fuzzy=settings.use_fuzzy_matching,
            max_workers=settings.dedup_max_workers
        )

    def deduplicate(self, references: Iterable[Reference]) -> List[DuplicateCluster]:
        """
        Partition references into duplicate clusters

        Returns:
            Clusters ordered by primary id; every reference belongs to
            exactly one cluster
        """
        return self.find_duplicates(references).clusters

    def find_duplicates(
        self,
        references: Iterable[Reference],
        progress_callback: Optional[Callable] = None
    ) -> DeduplicationResult:
        """
        Find all duplicate clusters using enabled strategies

        Args:
            references: References of a single project
            progress_callback: Optional callback function(step, total_steps, message)

        Returns:
            DeduplicationResult with clusters and matched pairs

        Raises:
            ValueError: input is not a collection of References with unique ids
        """
        refs = self._validate_input(references)
        by_id = {ref.id: ref for ref in refs}
        original_count = len(refs)

        if not refs:
            logger.info("No references to deduplicate")
            return DeduplicationResult(original_count=0, duplicate_count=0, final_count=0)

        logger.info(f"Starting deduplication on {original_count} references")

        keys = {ref.id: build_identity_key(ref) for ref in refs}
        union_find = UnionFind(sorted(by_id))
        pair_reasons: Dict[Pair, Set[DuplicateReason]] = defaultdict(set)
        pair_similarity: Dict[Pair, float] = {}
        strategies_used = []

        total_steps = sum([self.use_doi, self.use_pmid, self.use_fuzzy])
        current_step = 0

        # Strategy 1: DOI matching
        if self.use_doi:
            current_step += 1
            if progress_callback:
                progress_callback(current_step, total_steps, "Finding DOI duplicates...")

            found = self._match_identifier(keys, 'doi', DuplicateReason.DOI, union_find, pair_reasons)
            strategies_used.append(f"DOI matching ({found} pairs)")
            logger.info(f"Found {found} DOI duplicate pairs")

        # Strategy 2: PMID matching
        if self.use_pmid:
            current_step += 1
            if progress_callback:
                progress_callback(current_step, total_steps, "Finding PMID duplicates...")

            found = self._match_identifier(keys, 'pmid', DuplicateReason.PMID, union_find, pair_reasons)
            strategies_used.append(f"PMID matching ({found} pairs)")
            logger.info(f"Found {found} PMID duplicate pairs")

        # Strategy 3: Fuzzy title matching
        if self.use_fuzzy:
            current_step += 1
            if progress_callback:
                progress_callback(current_step, total_steps, "Analyzing title similarity...")

            # Pairs already joined by an identifier are not rescored
            exact_roots = {ref_id: union_find.find(ref_id) for ref_id in keys}
            candidates = [keys[ref_id] for ref_id in sorted(keys) if keys[ref_id].title]

            fuzzy_pairs = self._find_fuzzy_pairs(candidates, exact_roots)
            for (a, b), similarity in fuzzy_pairs:
                union_find.union(a, b)
                pair_reasons[(a, b)].add(DuplicateReason.TITLE)
                pair_similarity[(a, b)] = similarity

            strategies_used.append(f"Title similarity ({len(fuzzy_pairs)} pairs)")
            logger.info(f"Found {len(fuzzy_pairs)} fuzzy title duplicate pairs")

        clusters = self._build_clusters(union_find, by_id, keys)
        matches = [
            DuplicateMatch(
                reference_id_1=a,
                reference_id_2=b,
                reasons=frozenset(reasons),
                title_similarity=pair_similarity.get((a, b))
            )
            for (a, b), reasons in sorted(pair_reasons.items())
        ]

        result = DeduplicationResult(
            original_count=original_count,
            duplicate_count=original_count - len(clusters),
            final_count=len(clusters),
            clusters=clusters,
            matches=matches,
            strategies_used=strategies_used,
            doi_matches=sum(1 for m in matches if DuplicateReason.DOI in m.reasons),
            pmid_matches=sum(1 for m in matches if DuplicateReason.PMID in m.reasons),
            title_matches=sum(1 for m in matches if DuplicateReason.TITLE in m.reasons),
            references=by_id
        )

        logger.info(
            f"Deduplication complete: {original_count} → {result.final_count} "
            f"({result.duplicate_count} duplicates in {len(clusters)} clusters)"
        )

        return result

    @staticmethod
    def _validate_input(references: Iterable[Reference]) -> List[Reference]:
        if references is None:
            raise ValueError("references must be an iterable of Reference, got None")

        refs = list(references)
        seen = set()
        for ref in refs:
            if not isinstance(ref, Reference):
                raise ValueError(f"Expected Reference, got {type(ref).__name__}")
            if ref.id in seen:
                raise ValueError(f"Duplicate reference id {ref.id} in deduplication input")
            seen.add(ref.id)
        return refs

    @staticmethod
    def _match_identifier(
        keys: Dict[int, IdentityKey],
        attribute: str,
        reason: DuplicateReason,
        union_find: UnionFind,
        pair_reasons: Dict[Pair, Set[DuplicateReason]]
    ) -> int:
        """
        Link every pair of references sharing a non-empty normalized identifier

        Returns:
            Number of pairs linked by this identifier
        """
        groups: Dict[str, List[int]] = defaultdict(list)
        for ref_id in sorted(keys):
            value = getattr(keys[ref_id], attribute)
            if value:
                groups[value].append(ref_id)

        found = 0
        for ids in groups.values():
            if len(ids) < 2:
                continue
            for i in range(len(ids)):
                for j in range(i + 1, len(ids)):
                    union_find.union(ids[i], ids[j])
                    pair_reasons[(ids[i], ids[j])].add(reason)
                    found += 1
        return found

    @staticmethod
    def _build_blocks(candidates: List[IdentityKey]) -> Dict[BlockKey, List[IdentityKey]]:
        """
        Group candidates by (first author initial, year)

        A reference without a year joins every year block of its author
        initial, so it can still match a dated record.
        """
        dated: Dict[str, Dict[int, List[IdentityKey]]] = defaultdict(lambda: defaultdict(list))
        undated: Dict[str, List[IdentityKey]] = defaultdict(list)

        for key in candidates:
            if key.year is None:
                undated[key.first_initial].append(key)
            else:
                dated[key.first_initial][key.year].append(key)

        blocks: Dict[BlockKey, List[IdentityKey]] = {}
        for initial in sorted(set(dated) | set(undated)):
            years = dated.get(initial, {})
            for year in sorted(years):
                blocks[(initial, year)] = years[year] + undated.get(initial, [])
            if not years and undated.get(initial):
                blocks[(initial, None)] = list(undated[initial])

        return {block_key: keys for block_key, keys in blocks.items() if len(keys) > 1}

    def _score_block(
        self,
        block: List[IdentityKey],
        exact_roots: Dict[int, int]
    ) -> List[Tuple[Pair, float]]:
        """Score all distinct pairs within one block that are not already linked"""
        found = []
        ordered = sorted(block, key=lambda k: k.reference_id)
        for i in range(len(ordered)):
            for j in range(i + 1, len(ordered)):
                left, right = ordered[i], ordered[j]
                if exact_roots[left.reference_id] == exact_roots[right.reference_id]:
                    continue
                similarity = self._fuzzy_similarity(left, right)
                if similarity is not None:
                    found.append(((left.reference_id, right.reference_id), similarity))
                    logger.debug(
                        f"Title match (similarity={similarity:.3f}): "
                        f"{left.reference_id} '{left.title[:50]}' == {right.reference_id} '{right.title[:50]}'"
                    )
        return found

    def _fuzzy_similarity(self, left: IdentityKey, right: IdentityKey) -> Optional[float]:
        """Title similarity when the pair is a fuzzy duplicate, else None"""
        if left.year is not None and right.year is not None and left.year != right.year:
            return None

        if left.has_authors or right.has_authors:
            if not (left.surnames & right.surnames):
                return None

        similarity = self.scorer.score(left.title, right.title)
        if similarity < self.title_threshold:
            return None
        return similarity

    def _find_fuzzy_pairs(
        self,
        candidates: List[IdentityKey],
        exact_roots: Dict[int, int]
    ) -> List[Tuple[Pair, float]]:
        """
        Score every block and return matched pairs sorted by id pair

        Blocks are independent, so they are scored concurrently when more
        than one worker is configured.
        """
        blocks = self._build_blocks(candidates)
        if not blocks:
            return []

        scored: List[Tuple[Pair, float]] = []
        if self.max_workers == 1 or len(blocks) == 1:
            for block in blocks.values():
                scored.extend(self._score_block(block, exact_roots))
        else:
            logger.info(f"Scoring {len(blocks)} blocks with {self.max_workers} workers")
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                future_to_block = {
                    executor.submit(self._score_block, block, exact_roots): block_key
                    for block_key, block in blocks.items()
                }
                for future in as_completed(future_to_block):
                    scored.extend(future.result())

        # Undated references appear in several blocks; keep one entry per pair
        best: Dict[Pair, float] = {}
        for pair, similarity in scored:
            best[pair] = max(similarity, best.get(pair, 0.0))
        return sorted(best.items())

    @staticmethod
    def _import_order(imported_at: datetime) -> datetime:
        # Naive timestamps are taken as UTC so mixed inputs stay comparable
        if imported_at.tzinfo is None:
            return imported_at.replace(tzinfo=timezone.utc)
        return imported_at

    @staticmethod
    def _completeness(key: IdentityKey) -> int:
        return sum([bool(key.doi), bool(key.pmid), key.year is not None, key.has_authors])

    def _build_clusters(
        self,
        union_find: UnionFind,
        by_id: Dict[int, Reference],
        keys: Dict[int, IdentityKey]
    ) -> List[DuplicateCluster]:
        """
        Turn union-find groups into clusters with a deterministic primary

        Primary: most identifying fields, then earliest import, then lowest id.
        A reference counts as having authors when its author list is non-empty,
        whether or not a surname could be parsed.
        """
        clusters = []
        for members in union_find.groups().values():
            primary_id = min(
                members,
                key=lambda ref_id: (
                    -self._completeness(keys[ref_id]),
                    self._import_order(by_id[ref_id].imported_at),
                    ref_id
                )
            )
            clusters.append(DuplicateCluster(reference_ids=frozenset(members), primary_id=primary_id))

        clusters.sort(key=lambda c: c.primary_id)
        return clusters
