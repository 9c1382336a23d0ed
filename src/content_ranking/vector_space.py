"""
TF-IDF vector space model over a frozen DocumentStore.

Weights:
    w(d, t) = TF(d, t) * IDF(t),   IDF(t) = log10(N / DF(t))

Only non-zero weights are stored, so a term occurring in every document
(IDF = 0) never appears in any vector. Magnitudes are computed once at
build time and cached next to the vectors.

Ad-hoc queries are vectorized against the frozen IDF table and scored
through the inverted index; they never touch corpus statistics.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

import numpy as np
from scipy.sparse import csc_matrix, diags
from tqdm import tqdm

from content_ranking.documents import DocumentStore, term_frequencies

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryVector:
    """Sparse TF-IDF vector of a text that is not part of the corpus."""

    weights: Mapping[str, float]
    magnitude: float

    def __bool__(self) -> bool:
        return self.magnitude > 0.0


def sparse_dot(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """
    Dot product of two sparse vectors.

    Iterates the smaller mapping and looks terms up in the larger one. The
    products are summed with math.fsum, which is exactly rounded, so the
    result does not depend on which side is iterated.
    """
    if len(a) > len(b):
        a, b = b, a
    return math.fsum(weight * b[term] for term, weight in a.items() if term in b)


def cosine(
    a: Mapping[str, float], magnitude_a: float, b: Mapping[str, float], magnitude_b: float
) -> float:
    """Cosine of two non-negative sparse vectors; 0.0 if either is the zero vector."""
    if magnitude_a == 0.0 or magnitude_b == 0.0:
        return 0.0
    similarity = sparse_dot(a, b) / (magnitude_a * magnitude_b)
    return min(similarity, 1.0)


class SimilarityModel:
    """
    Immutable TF-IDF model. Create with ``SimilarityModel.build(store)``.

    Attributes:
        store: The DocumentStore the model was derived from.
        magnitudes: Euclidean norm of each document vector (N,).
    """

    def __init__(
        self,
        store: DocumentStore,
        weight_vectors: tuple[Mapping[str, float], ...],
        magnitudes: np.ndarray,
    ):
        self.store = store
        self._weight_vectors = weight_vectors
        self.magnitudes = magnitudes
        self.magnitudes.flags.writeable = False

    @classmethod
    def build(cls, store: DocumentStore, show_progress: bool = False) -> SimilarityModel:
        """
        Compute every document's weight vector and magnitude.

        The weight matrix is TF (vocab, N) scaled row-wise by IDF, i.e. every
        term of the global vocabulary is weighed exactly once per document.
        Entries with weight 0 are then dropped.

        Args:
            store: Frozen document store.
            show_progress: Display a tqdm progress bar while extracting vectors.

        Returns:
            A new SimilarityModel.
        """
        idf = store.idf_array()
        if store.vocab_size:
            weight_matrix = (diags(idf) @ store.tf_matrix).tocsc()
        else:
            weight_matrix = csc_matrix((0, store.N), dtype=np.float64)
        weight_matrix.eliminate_zeros()

        terms = list(store.vocabulary)
        vectors: list[Mapping[str, float]] = []
        magnitudes = np.zeros(store.N, dtype=np.float64)

        positions = range(store.N)
        if show_progress:
            positions = tqdm(positions, desc="Weighting", unit="doc")

        for position in positions:
            start, end = weight_matrix.indptr[position], weight_matrix.indptr[position + 1]
            term_ids = weight_matrix.indices[start:end]
            values = weight_matrix.data[start:end]
            weights = {
                terms[term_id]: float(value)
                for term_id, value in zip(term_ids, values)
                if value > 0.0
            }
            vectors.append(MappingProxyType(weights))
            magnitudes[position] = math.sqrt(math.fsum(w * w for w in weights.values()))

        zero = int(np.count_nonzero(magnitudes == 0.0))
        logger.info(
            "Built TF-IDF vectors for %d documents (%d with zero magnitude)", store.N, zero
        )
        return cls(store, tuple(vectors), magnitudes)

    def __len__(self) -> int:
        return self.store.N

    def weight_vector(self, position: int) -> Mapping[str, float]:
        return self._weight_vectors[position]

    def magnitude(self, position: int) -> float:
        return float(self.magnitudes[position])

    def cosine_similarity(self, a: int, b: int) -> float:
        """Cosine similarity of two documents by corpus position, in [0, 1]."""
        return cosine(
            self._weight_vectors[a],
            float(self.magnitudes[a]),
            self._weight_vectors[b],
            float(self.magnitudes[b]),
        )

    def vectorize_query(self, text: str) -> QueryVector:
        """
        Weigh a free-text query with the corpus IDF table.

        Terms unknown to the corpus get IDF 0 and are dropped, as are terms
        present in every document.
        """
        weights = {}
        for term, tf in term_frequencies(text).items():
            weight = tf * self.store.inverse_document_frequency(term)
            if weight > 0.0:
                weights[term] = weight
        magnitude = math.sqrt(math.fsum(w * w for w in weights.values()))
        return QueryVector(MappingProxyType(weights), magnitude)

    def query_similarity(self, query: QueryVector, position: int) -> float:
        return cosine(
            query.weights,
            query.magnitude,
            self._weight_vectors[position],
            float(self.magnitudes[position]),
        )

    def query_similarities(self, query: QueryVector) -> dict[int, float]:
        """
        Cosine similarity of the query against every document sharing a term.

        Candidates are gathered from the posting lists of the query terms, so
        documents sharing no weighted term are never visited; their
        similarity is 0.

        Returns:
            Corpus position -> cosine similarity, for candidate documents only.
        """
        if not query:
            return {}
        candidates: set[int] = set()
        for term in query.weights:
            candidates.update(self.store.posting_list(term).tolist())
        return {position: self.query_similarity(query, position) for position in sorted(candidates)}
