"""
Documents, term normalization, and the inverted-index document store.

The store is built once from a fixed list of documents and is read-only
afterwards. It owns every per-document derived table (term frequencies,
tag sets) so that documents themselves stay plain immutable values.

Usage:
    from content_ranking.documents import Document, DocumentStore

    store = DocumentStore([
        Document("tt01", body="a robot falls in love", genres="Sci-Fi"),
        Document("tt02", body="a love story in paris", genres="Romance"),
    ])
    store.document_frequency("love")  # 2
"""

from __future__ import annotations

import hashlib
import logging
import math
import re
from collections import Counter
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.sparse import csr_matrix

from content_ranking.exceptions import DocumentNotFoundError, DuplicateDocumentError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


# =============================================================================
# Normalization
# =============================================================================

_NON_ALPHANUMERIC = re.compile(r"[^A-Za-z0-9]")
_WHITESPACE = re.compile(r"\s+")

_EMPTY_POSTINGS: NDArray[np.int64] = np.array([], dtype=np.int64)
_EMPTY_POSTINGS.flags.writeable = False


def normalize_terms(text: str | None) -> list[str]:
    """
    Split text into normalized terms.

    Tokens are separated on whitespace, stripped of every non-alphanumeric
    character and lower-cased. Tokens that end up empty are discarded, so
    "sci-fi" becomes "scifi" and "--" disappears.

    Args:
        text: Raw text, or None for a document without a body.

    Returns:
        Terms in order of appearance (duplicates kept).
    """
    if not text:
        return []
    terms = []
    for token in _WHITESPACE.split(text):
        term = _NON_ALPHANUMERIC.sub("", token).lower()
        if term:
            terms.append(term)
    return terms


def term_frequencies(text: str | None) -> Counter[str]:
    """Term frequency multiset of a text."""
    return Counter(normalize_terms(text))


def parse_tags(raw: str | None) -> frozenset[str]:
    """Split a comma-separated category string into trimmed, non-empty tags."""
    if not raw:
        return frozenset()
    return frozenset(tag.strip() for tag in raw.split(",") if tag.strip())


# =============================================================================
# Document
# =============================================================================


@dataclass(frozen=True)
class Document:
    """
    A single corpus member.

    Args:
        id: Stable unique identifier (e.g. an IMDb ``tconst``).
        body: Free-text body (synopsis). None when no text is available.
        genres: Raw comma-separated category string.
        title: Display title. Defaults to the identifier.
        metadata: Extra descriptive fields (year, rating, ...). Not used for scoring.
    """

    id: str
    body: str | None = None
    genres: str = ""
    title: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if not self.title:
            object.__setattr__(self, "title", self.id)

    @property
    def tags(self) -> frozenset[str]:
        return parse_tags(self.genres)


# =============================================================================
# Document Store (inverted index)
# =============================================================================


class DocumentStore:
    """
    Immutable corpus with an inverted index and document-frequency table.

    Built in O(total tokens). For every distinct term of every body the
    document's position is recorded in that term's posting list; a document
    with an empty body is still a corpus member but has no index entries.

    Attributes:
        N: Number of documents.
        vocabulary: Term -> term id, in first-seen order.
        tf_matrix: Sparse term-document count matrix (vocab_size, N).
        df_array: Document frequency per term id (vocab_size,).
    """

    def __init__(self, documents: Iterable[Document]):
        self._documents: tuple[Document, ...] = tuple(documents)
        self.N = len(self._documents)

        self._id_to_position: dict[str, int] = {}
        for position, document in enumerate(self._documents):
            if document.id in self._id_to_position:
                raise DuplicateDocumentError(f"Duplicate document id {document.id!r}")
            self._id_to_position[document.id] = position

        self._term_frequencies: tuple[Counter[str], ...] = tuple(
            term_frequencies(document.body) for document in self._documents
        )
        self._tags: tuple[frozenset[str], ...] = tuple(
            document.tags for document in self._documents
        )

        self._vocab: dict[str, int] = {}
        postings: list[list[int]] = []
        rows: list[int] = []
        cols: list[int] = []
        counts: list[int] = []
        for position, frequencies in enumerate(self._term_frequencies):
            for term, count in frequencies.items():
                term_id = self._vocab.get(term)
                if term_id is None:
                    term_id = len(self._vocab)
                    self._vocab[term] = term_id
                    postings.append([])
                postings[term_id].append(position)
                rows.append(term_id)
                cols.append(position)
                counts.append(count)

        self.vocab_size = len(self._vocab)
        self.tf_matrix = csr_matrix(
            (
                np.array(counts, dtype=np.float64),
                (np.array(rows, dtype=np.int64), np.array(cols, dtype=np.int64)),
            ),
            shape=(self.vocab_size, self.N),
        )
        # Positions are appended in ascending order, so posting lists are sorted.
        self._posting_lists: tuple[NDArray[np.int64], ...] = tuple(
            np.array(doc_positions, dtype=np.int64) for doc_positions in postings
        )
        for posting_list in self._posting_lists:
            posting_list.flags.writeable = False
        self.df_array = np.array([len(p) for p in postings], dtype=np.int64)
        self._fingerprint: str | None = None

        logger.info(
            "Indexed %d documents (%d terms, %d empty bodies)",
            self.N,
            self.vocab_size,
            sum(1 for frequencies in self._term_frequencies if not frequencies),
        )

    # ----- Container protocol -----

    def __len__(self) -> int:
        return self.N

    def __iter__(self) -> Iterator[Document]:
        return iter(self._documents)

    def __getitem__(self, position: int) -> Document:
        return self._documents[position]

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._id_to_position

    @property
    def documents(self) -> tuple[Document, ...]:
        return self._documents

    @property
    def ids(self) -> list[str]:
        return [document.id for document in self._documents]

    @property
    def vocabulary(self) -> Mapping[str, int]:
        return self._vocab

    @property
    def fingerprint(self) -> str:
        """
        Digest of the ordered ids, bodies and genre strings.

        Any change to the corpus changes IDF and therefore every score, so
        derived tables record this value and are only reused against a store
        with the same fingerprint.
        """
        if self._fingerprint is None:
            digest = hashlib.sha256(str(self.N).encode())
            for document in self._documents:
                for part in (document.id, document.body or "", document.genres):
                    digest.update(b"\x00")
                    digest.update(part.encode("utf-8"))
            self._fingerprint = digest.hexdigest()
        return self._fingerprint

    # ----- Lookup -----

    def position(self, doc_id: str) -> int:
        """Corpus position of a document id; raises DocumentNotFoundError."""
        try:
            return self._id_to_position[doc_id]
        except KeyError:
            raise DocumentNotFoundError(doc_id) from None

    def get(self, doc_id: str) -> Document:
        """Document for an id; raises DocumentNotFoundError."""
        return self._documents[self.position(doc_id)]

    def find_by_title(self, title: str) -> Document | None:
        """
        Look up a document by title.

        An exact case-insensitive match wins; otherwise the first document
        (in corpus order) whose title contains the query is returned.
        """
        wanted = title.strip().lower()
        if not wanted:
            return None
        for document in self._documents:
            if document.title.lower() == wanted:
                return document
        for document in self._documents:
            if wanted in document.title.lower():
                return document
        return None

    # ----- Term statistics -----

    def get_term_id(self, term: str) -> int | None:
        """Term id, or None if the term never occurs in the corpus."""
        return self._vocab.get(term)

    def document_frequency(self, term: str) -> int:
        """Number of documents containing the term (0 for unknown terms)."""
        term_id = self._vocab.get(term)
        if term_id is None:
            return 0
        return int(self.df_array[term_id])

    def inverse_document_frequency(self, term: str) -> float:
        """
        IDF(t) = log10(N / DF(t)) for indexed terms, 0 otherwise.

        A term that is wholly absent from the corpus contributes no weight.
        """
        term_id = self._vocab.get(term)
        if term_id is None:
            return 0.0
        df = int(self.df_array[term_id])
        assert df > 0, f"indexed term {term!r} has document frequency 0"
        return math.log10(self.N / df)

    def idf_array(self) -> NDArray[np.float64]:
        """IDF for every term id (vocab_size,)."""
        if self.vocab_size == 0:
            return np.zeros(0, dtype=np.float64)
        assert np.all(self.df_array > 0), "indexed term with document frequency 0"
        return np.log10(self.N / self.df_array.astype(np.float64))

    def posting_list(self, term: str) -> NDArray[np.int64]:
        """Sorted positions of documents containing the term."""
        term_id = self._vocab.get(term)
        if term_id is None:
            return _EMPTY_POSTINGS
        return self._posting_lists[term_id]

    # ----- Per-document tables -----

    def term_frequencies(self, position: int) -> Mapping[str, int]:
        return self._term_frequencies[position]

    def term_frequency(self, position: int, term: str) -> int:
        """Occurrences of a term in a document (0 if absent)."""
        return self._term_frequencies[position].get(term, 0)

    def tags(self, position: int) -> frozenset[str]:
        return self._tags[position]
