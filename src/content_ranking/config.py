"""
Ranking configuration.

All weights are configuration rather than constants; earlier revisions
shipped 50/50, 70/30 and 80/20 content/category splits.
The defaults below follow the last revision (80/20, asymmetric genre overlap).

Environment overrides (read by ``RankerConfig.from_env``):
    CONTENT_RANKING_CONTENT_WEIGHT=0.7
    CONTENT_RANKING_CATEGORY_WEIGHT=0.3
    CONTENT_RANKING_CATEGORY_POLICY=symmetric      # or asymmetric
    CONTENT_RANKING_GENRE_BOOST_PER_MATCH=0.05
    CONTENT_RANKING_SIMILARITY_THRESHOLD=0.1
    CONTENT_RANKING_NUM_WORKERS=8
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any

from content_ranking.exceptions import InvalidConfigurationError

ENV_PREFIX = "CONTENT_RANKING_"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class CategoryPolicy(str, Enum):
    """How two tag sets are compared."""

    SYMMETRIC = "symmetric"  # |a & b| / |a | b|
    ASYMMETRIC = "asymmetric"  # |a & b| / |b|

    @classmethod
    def parse(cls, value: str | CategoryPolicy) -> CategoryPolicy:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(policy.value for policy in cls)
            raise InvalidConfigurationError(
                f"Unknown category policy {value!r} (expected one of: {choices})"
            ) from None


@dataclass(frozen=True)
class RankerConfig:
    """
    Scoring and execution options for the Ranker.

    Args:
        content_weight: Weight of the TF-IDF cosine similarity.
        category_weight: Weight of the categorical (genre) overlap.
        category_policy: Symmetric (Jaccard) or asymmetric (coverage of b) overlap.
        genre_boost_per_match: Score added per document tag mentioned in a prompt.
        similarity_threshold: Default minimum score kept by the all-pairs table.
        num_workers: Threads used for the all-pairs table.
        min_documents_for_parallel: Corpus size below which the table is built serially.
    """

    content_weight: float = 0.8
    category_weight: float = 0.2
    category_policy: CategoryPolicy = CategoryPolicy.ASYMMETRIC
    genre_boost_per_match: float = 0.05
    similarity_threshold: float = 0.0
    num_workers: int = 8
    min_documents_for_parallel: int = 200

    def __post_init__(self) -> None:
        object.__setattr__(self, "category_policy", CategoryPolicy.parse(self.category_policy))
        for name in ("content_weight", "category_weight", "genre_boost_per_match"):
            value = getattr(self, name)
            if not _is_number(value) or value < 0:
                raise InvalidConfigurationError(f"{name} must be a non-negative number, got {value!r}")
        if self.content_weight == 0 and self.category_weight == 0:
            raise InvalidConfigurationError("content_weight and category_weight cannot both be zero")
        if not _is_number(self.similarity_threshold):
            raise InvalidConfigurationError(
                f"similarity_threshold must be a number, got {self.similarity_threshold!r}"
            )
        if not _is_integer(self.num_workers) or self.num_workers < 1:
            raise InvalidConfigurationError(f"num_workers must be an integer >= 1, got {self.num_workers!r}")
        if not _is_integer(self.min_documents_for_parallel) or self.min_documents_for_parallel < 0:
            raise InvalidConfigurationError(
                "min_documents_for_parallel must be an integer >= 0, "
                f"got {self.min_documents_for_parallel!r}"
            )

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> RankerConfig:
        """Build a config from a plain mapping, converting string values."""
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(values) - set(known))
        if unknown:
            raise InvalidConfigurationError(f"Unknown configuration option(s): {', '.join(unknown)}")
        kwargs: dict[str, Any] = {}
        for name, value in values.items():
            kwargs[name] = _coerce(name, value)
        return cls(**kwargs)

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX
    ) -> RankerConfig:
        """Build a config from ``<prefix><OPTION>`` environment variables."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            key = prefix + f.name.upper()
            if key in environ and environ[key].strip():
                values[f.name] = environ[key]
        return cls.from_mapping(values)

    def with_overrides(self, **overrides: Any) -> RankerConfig:
        """Copy with the given options replaced; None values are ignored."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def scoring_key(self) -> dict[str, Any]:
        """The options that determine pairwise scores."""
        return {
            "content_weight": float(self.content_weight),
            "category_weight": float(self.category_weight),
            "category_policy": self.category_policy.value,
        }

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["category_policy"] = self.category_policy.value
        return data


_INT_OPTIONS = {"num_workers", "min_documents_for_parallel"}


def _coerce(name: str, value: Any) -> Any:
    if name == "category_policy":
        return CategoryPolicy.parse(value)
    if not isinstance(value, str):
        return value
    try:
        return int(value) if name in _INT_OPTIONS else float(value)
    except ValueError:
        raise InvalidConfigurationError(f"Invalid value for {name}: {value!r}") from None
