"""
Combined content + category ranking.

Scoring:
    score(a, b) = content_weight * cosine(a, b) + category_weight * overlap(a, b)

Modes:
1. rank_single     - neighbours of one reference document
2. rank_from_set   - mean score against several reference documents
3. rank_by_prompt  - cosine against an ad-hoc text, plus a bounded tag bonus
4. precompute_all_pairs - thresholded all-pairs table reused by rank_single

Ties are broken by corpus position, so every mode is deterministic.

Usage:
    from content_ranking import Ranker, RankerConfig

    ranker = Ranker.from_documents(documents, RankerConfig(content_weight=0.7, category_weight=0.3))
    ranker.rank_single("tt0133093", k=10)
    ranker.rank_by_prompt("a sci-fi adventure with robots", k=10)
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
from tqdm import tqdm

from content_ranking.config import CategoryPolicy, RankerConfig
from content_ranking.documents import Document, DocumentStore
from content_ranking.exceptions import InvalidConfigurationError
from content_ranking.vector_space import SimilarityModel

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


class RankedDocument(NamedTuple):
    """A ranking entry; unpacks as ``(doc_id, score)``."""

    doc_id: str
    score: float


# =============================================================================
# Categorical overlap
# =============================================================================


def categorical_overlap(
    a: frozenset[str] | set[str],
    b: frozenset[str] | set[str],
    policy: CategoryPolicy = CategoryPolicy.ASYMMETRIC,
) -> float:
    """
    Similarity of two tag sets in [0, 1].

    SYMMETRIC is |a & b| / |a | b|. ASYMMETRIC is |a & b| / |b|, i.e. how
    much of b's tags are covered by a; it is not commutative. Either set
    being empty gives 0.0.
    """
    if not a or not b:
        return 0.0
    shared = len(a & b)
    if policy is CategoryPolicy.SYMMETRIC:
        return shared / len(a | b)
    if policy is CategoryPolicy.ASYMMETRIC:
        return shared / len(b)
    raise InvalidConfigurationError(f"Unsupported category policy: {policy!r}")


def _top_k(
    positions: NDArray[np.int64],
    scores: NDArray[np.float64],
    k: int,
    ids: Sequence[str],
) -> list[RankedDocument]:
    """Sort descending by score, ties by ascending corpus position, keep k."""
    order = np.lexsort((positions, -scores))[:k]
    return [RankedDocument(ids[positions[i]], float(scores[i])) for i in order]


def _check_k(k: int) -> int:
    if isinstance(k, bool) or not isinstance(k, (int, np.integer)) or k < 0:
        raise InvalidConfigurationError(f"k must be a non-negative integer, got {k!r}")
    return int(k)


# =============================================================================
# Precomputed similarity table
# =============================================================================


class SimilarityTable:
    """
    Thresholded all-pairs similarity rows, keyed by document id.

    Each row lists every other document whose score against the row's
    document is at or above ``threshold``, sorted descending. The table
    records the scoring options, the ids it was computed over and the
    store fingerprint so a ranker can tell whether the rows still describe
    its corpus.
    """

    FORMAT_VERSION = 2

    def __init__(
        self,
        rows: Mapping[str, Sequence[RankedDocument]],
        threshold: float,
        scoring: Mapping[str, Any],
        document_ids: Iterable[str],
        fingerprint: str | None = None,
    ):
        self._rows = {doc_id: tuple(row) for doc_id, row in rows.items()}
        self.threshold = float(threshold)
        self.scoring = dict(scoring)
        self.document_ids = frozenset(document_ids)
        self.fingerprint = fingerprint

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._rows

    def row(self, doc_id: str) -> tuple[RankedDocument, ...] | None:
        return self._rows.get(doc_id)

    @property
    def complete(self) -> bool:
        """Scores are non-negative, so a threshold <= 0 keeps every pair."""
        return self.threshold <= 0.0

    @property
    def pair_count(self) -> int:
        return sum(len(row) for row in self._rows.values())

    def covers(self, store: DocumentStore) -> bool:
        """True if every document of the store took part in building the table."""
        return all(doc_id in self.document_ids for doc_id in store.ids)

    # ----- Persistence -----

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.FORMAT_VERSION,
            "threshold": self.threshold,
            "scoring": self.scoring,
            "document_ids": sorted(self.document_ids),
            "fingerprint": self.fingerprint,
            "rows": {
                doc_id: [[entry.doc_id, entry.score] for entry in row]
                for doc_id, row in self._rows.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], store: DocumentStore) -> SimilarityTable:
        """
        Rebuild a table against a (possibly rebuilt) store.

        Rows and entries naming ids that are no longer in the store are
        dropped. Rows are re-sorted so ties follow the current corpus order.
        The recorded fingerprint is kept as is, so a table loaded against a
        changed corpus is still readable but will not be attached.
        """
        dropped_rows = 0
        dropped_entries = 0
        rows: dict[str, list[RankedDocument]] = {}
        for doc_id, entries in data.get("rows", {}).items():
            if doc_id not in store:
                dropped_rows += 1
                continue
            row = []
            for other_id, score in entries:
                if other_id in store:
                    row.append(RankedDocument(other_id, float(score)))
                else:
                    dropped_entries += 1
            row.sort(key=lambda entry: (-entry.score, store.position(entry.doc_id)))
            rows[doc_id] = row

        if dropped_rows or dropped_entries:
            logger.debug(
                "Dropped %d stale rows and %d stale entries from similarity table",
                dropped_rows,
                dropped_entries,
            )
        document_ids = [doc_id for doc_id in data.get("document_ids", ()) if doc_id in store]
        return cls(
            rows,
            data.get("threshold", 0.0),
            data.get("scoring", {}),
            document_ids,
            data.get("fingerprint"),
        )

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f)
        logger.info("Saved similarity table (%d rows) to %s", len(self), path)

    @classmethod
    def load(cls, path: str | Path, store: DocumentStore) -> SimilarityTable:
        with Path(path).open("r", encoding="utf-8") as f:
            data = json.load(f)
        table = cls.from_dict(data, store)
        logger.info("Loaded similarity table (%d rows) from %s", len(table), path)
        return table


# =============================================================================
# Ranker
# =============================================================================


class Ranker:
    """
    Ranks corpus documents against documents, document sets, or free text.

    Args:
        model: Immutable TF-IDF model (its store provides tags and ids).
        config: Scoring options. Defaults to ``RankerConfig()``.
        table: Optional precomputed similarity table.
    """

    def __init__(
        self,
        model: SimilarityModel,
        config: RankerConfig | None = None,
        table: SimilarityTable | None = None,
    ):
        self.model = model
        self.config = config or RankerConfig()
        self._ids = model.store.ids
        self._tags = [model.store.tags(position) for position in range(model.store.N)]
        self._lower_tags = [tuple(tag.lower() for tag in tags) for tags in self._tags]
        self._table: SimilarityTable | None = None
        if table is not None:
            self.attach_table(table)

    @classmethod
    def from_documents(
        cls,
        documents: Iterable[Document],
        config: RankerConfig | None = None,
        show_progress: bool = False,
    ) -> Ranker:
        """Index documents, build the TF-IDF model and wrap it in a Ranker."""
        store = DocumentStore(documents)
        return cls(SimilarityModel.build(store, show_progress=show_progress), config)

    @property
    def store(self) -> DocumentStore:
        return self.model.store

    @property
    def table(self) -> SimilarityTable | None:
        return self._table

    def attach_table(self, table: SimilarityTable) -> bool:
        """
        Use a precomputed table for rank_single when it matches this ranker.

        A table computed with different scoring options, or over a corpus
        that differs in any way from the current store, is not attached.

        Returns:
            True if the table was attached.
        """
        if table.scoring != self.config.scoring_key():
            logger.debug("Ignoring similarity table built with scoring %s", table.scoring)
            return False
        if not table.covers(self.store):
            logger.debug("Ignoring similarity table that does not cover the current corpus")
            return False
        if table.fingerprint != self.store.fingerprint:
            logger.debug("Ignoring similarity table built over a different corpus")
            return False
        self._table = table
        return True

    def detach_table(self) -> None:
        self._table = None

    # ----- Scoring -----

    def _score(self, a: int, b: int) -> float:
        content = self.model.cosine_similarity(a, b)
        category = categorical_overlap(self._tags[a], self._tags[b], self.config.category_policy)
        return self.config.content_weight * content + self.config.category_weight * category

    def combined_score(self, a: str, b: str) -> float:
        """Combined score of document ``b`` relative to reference ``a``."""
        return self._score(self.store.position(a), self.store.position(b))

    def _row_scores(self, reference: int) -> NDArray[np.float64]:
        return np.array(
            [self._score(reference, other) for other in range(self.store.N)], dtype=np.float64
        )

    # ----- Ranking modes -----

    def rank_single(self, doc_id: str, k: int) -> list[RankedDocument]:
        """
        The k documents most similar to ``doc_id``, excluding itself.

        A precomputed row is used when it can answer the request exactly;
        otherwise every candidate is scored on the fly.

        Raises:
            DocumentNotFoundError: Unknown document id.
            InvalidConfigurationError: Negative or non-integer k.
        """
        k = _check_k(k)
        reference = self.store.position(doc_id)
        if k == 0:
            return []

        if self._table is not None:
            row = self._table.row(doc_id)
            if row is not None and (self._table.complete or len(row) >= k):
                return list(row[:k])
            logger.debug("Similarity table cannot answer %r with k=%d; scoring on the fly", doc_id, k)

        scores = self._row_scores(reference)
        positions = np.delete(np.arange(self.store.N, dtype=np.int64), reference)
        return _top_k(positions, scores[positions], k, self._ids)

    def rank_from_set(self, doc_ids: Iterable[str], k: int) -> list[RankedDocument]:
        """
        Rank candidates by their mean score against a set of references.

        Documents in the reference set are never returned. A single
        reference gives exactly the result of ``rank_single``.

        Raises:
            DocumentNotFoundError: Any unknown document id.
            InvalidConfigurationError: Negative or non-integer k.
        """
        k = _check_k(k)
        references = list(dict.fromkeys(self.store.position(doc_id) for doc_id in doc_ids))
        if not references or k == 0:
            return []
        if len(references) == 1:
            return self.rank_single(self._ids[references[0]], k)

        excluded = set(references)
        positions = np.array(
            [p for p in range(self.store.N) if p not in excluded], dtype=np.int64
        )
        scores = np.array(
            [
                math.fsum(self._score(reference, candidate) for reference in references)
                / len(references)
                for candidate in positions
            ],
            dtype=np.float64,
        )
        return _top_k(positions, scores, k, self._ids)

    def rank_by_prompt(self, text: str, k: int) -> list[RankedDocument]:
        """
        Rank every document against an ad-hoc text.

        The score is the cosine similarity to the prompt vector plus
        ``genre_boost_per_match`` for each of the document's tags that appears
        (case-insensitively) as a substring of the prompt, clamped to [0, 1].
        The prompt is never added to the corpus.
        """
        k = _check_k(k)
        if k == 0 or self.store.N == 0:
            return []
        query = self.model.vectorize_query(text)
        similarities = self.model.query_similarities(query)
        prompt = text.lower()
        boost = self.config.genre_boost_per_match

        scores = np.zeros(self.store.N, dtype=np.float64)
        for position in range(self.store.N):
            matched = sum(1 for tag in self._lower_tags[position] if tag in prompt)
            score = similarities.get(position, 0.0) + matched * boost
            scores[position] = min(max(score, 0.0), 1.0)

        positions = np.arange(self.store.N, dtype=np.int64)
        return _top_k(positions, scores, k, self._ids)

    # ----- All-pairs precomputation -----

    def _table_row(self, reference: int, threshold: float) -> tuple[RankedDocument, ...]:
        scores = self._row_scores(reference)
        keep = scores >= threshold
        keep[reference] = False
        positions = np.flatnonzero(keep).astype(np.int64)
        return tuple(_top_k(positions, scores[positions], len(positions), self._ids))

    def precompute_all_pairs(
        self, threshold: float | None = None, show_progress: bool = False
    ) -> SimilarityTable:
        """
        Score every ordered pair of distinct documents and keep those >= threshold.

        Rows are independent and read only frozen model tables, so large
        corpora are split across a thread pool; each row is sorted on its own.
        The resulting table is attached to this ranker and returned.

        Args:
            threshold: Minimum score kept. Defaults to ``config.similarity_threshold``.
            show_progress: Display a tqdm progress bar.
        """
        threshold = self.config.similarity_threshold if threshold is None else float(threshold)
        n = self.store.N

        def build_row(reference: int) -> tuple[RankedDocument, ...]:
            return self._table_row(reference, threshold)

        if n < max(self.config.min_documents_for_parallel, 2) or self.config.num_workers == 1:
            rows_iter = map(build_row, range(n))
            if show_progress:
                rows_iter = tqdm(rows_iter, total=n, desc="Similarity table", unit="doc")
            rows = list(rows_iter)
        else:
            with ThreadPoolExecutor(max_workers=self.config.num_workers) as executor:
                rows_iter = executor.map(build_row, range(n))
                if show_progress:
                    rows_iter = tqdm(rows_iter, total=n, desc="Similarity table", unit="doc")
                rows = list(rows_iter)

        table = SimilarityTable(
            {self._ids[position]: row for position, row in enumerate(rows)},
            threshold=threshold,
            scoring=self.config.scoring_key(),
            document_ids=self._ids,
            fingerprint=self.store.fingerprint,
        )
        logger.info(
            "Precomputed %d pairs at threshold %.3f over %d documents",
            table.pair_count,
            threshold,
            n,
        )
        self._table = table
        return table
