"""Content-similarity ranking: inverted index, TF-IDF model and combined ranker."""

from content_ranking.config import CategoryPolicy, RankerConfig
from content_ranking.documents import (
    Document,
    DocumentStore,
    normalize_terms,
    parse_tags,
    term_frequencies,
)
from content_ranking.exceptions import (
    ContentRankingError,
    DocumentNotFoundError,
    DuplicateDocumentError,
    InvalidConfigurationError,
    RecordFormatError,
)
from content_ranking.ranking import (
    RankedDocument,
    Ranker,
    SimilarityTable,
    categorical_overlap,
)
from content_ranking.records import load_documents, save_documents
from content_ranking.vector_space import QueryVector, SimilarityModel

__all__ = [
    # Documents
    "Document",
    "DocumentStore",
    "normalize_terms",
    "parse_tags",
    "term_frequencies",
    # Model
    "SimilarityModel",
    "QueryVector",
    # Ranking
    "Ranker",
    "RankedDocument",
    "SimilarityTable",
    "categorical_overlap",
    "CategoryPolicy",
    "RankerConfig",
    # Records
    "load_documents",
    "save_documents",
    # Errors
    "ContentRankingError",
    "DocumentNotFoundError",
    "DuplicateDocumentError",
    "InvalidConfigurationError",
    "RecordFormatError",
]
