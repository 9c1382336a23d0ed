"""
Reading and writing the processed film table.

Columns (header row required):
    tconst, primaryTitle, originalTitle, isAdult, startYear,
    runtimeMinutes, genres, averageRating, synopsis

Malformed rows are skipped with a warning; only a file that lacks the
required columns is rejected outright.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import pandas as pd

from content_ranking.documents import Document
from content_ranking.exceptions import RecordFormatError

logger = logging.getLogger(__name__)

COLUMNS = [
    "tconst",
    "primaryTitle",
    "originalTitle",
    "isAdult",
    "startYear",
    "runtimeMinutes",
    "genres",
    "averageRating",
    "synopsis",
]

_MISSING = {"", "\\N"}
_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no", ""}


def _optional_int(value: str) -> int | None:
    value = value.strip()
    return None if value in _MISSING else int(value)


def _optional_float(value: str) -> float | None:
    value = value.strip()
    return None if value in _MISSING else float(value)


def _flag(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"invalid boolean {value!r}")


def _text(record: Mapping[str, Any], column: str) -> str:
    # Short rows come back from pandas padded with NaN.
    value = record.get(column)
    return value if isinstance(value, str) else ""


def parse_record(record: Mapping[str, Any]) -> Document:
    """
    Convert one row into a Document.

    Raises:
        ValueError: The row has no id or a field cannot be parsed.
    """
    doc_id = _text(record, "tconst").strip()
    if not doc_id:
        raise ValueError("missing tconst")
    genres = _text(record, "genres").strip()
    synopsis = _text(record, "synopsis").strip()
    metadata = {
        "original_title": _text(record, "originalTitle"),
        "is_adult": _flag(_text(record, "isAdult")),
        "start_year": _optional_int(_text(record, "startYear")),
        "runtime_minutes": _optional_int(_text(record, "runtimeMinutes")),
        "average_rating": _optional_float(_text(record, "averageRating")),
    }
    return Document(
        id=doc_id,
        body=synopsis or None,
        genres="" if genres in _MISSING else genres,
        title=_text(record, "primaryTitle").strip(),
        metadata=metadata,
    )


def _skip_bad_line(fields: list[str]) -> None:
    logger.warning("Skipping unreadable line with %d fields: %.80s", len(fields), ",".join(fields))
    return None


def load_documents(path: str | Path) -> list[Document]:
    """
    Load documents from the processed CSV file.

    Rows that fail to parse, or repeat an id already seen, are skipped with
    a warning.

    Raises:
        RecordFormatError: Required columns are missing.
    """
    frame = pd.read_csv(
        path,
        dtype=str,
        keep_default_na=False,
        engine="python",
        on_bad_lines=_skip_bad_line,
    )
    missing = [column for column in COLUMNS if column not in frame.columns]
    if missing:
        raise RecordFormatError(f"{path}: missing column(s) {', '.join(missing)}")

    documents: list[Document] = []
    seen: set[str] = set()
    for row, record in enumerate(frame.to_dict(orient="records"), start=1):
        try:
            document = parse_record(record)
        except (ValueError, KeyError) as e:
            logger.warning("Skipping malformed record %d of %s: %s", row, path, e)
            continue
        if document.id in seen:
            logger.warning("Skipping duplicate id %r in record %d of %s", document.id, row, path)
            continue
        seen.add(document.id)
        documents.append(document)

    logger.info("Loaded %d documents from %s", len(documents), path)
    return documents


def _format_optional(value: Any) -> str:
    return "\\N" if value is None else str(value)


def save_documents(documents: Iterable[Document], path: str | Path) -> None:
    """Write documents in the same format ``load_documents`` reads."""
    rows = []
    for document in documents:
        metadata = document.metadata
        rating = metadata.get("average_rating")
        rows.append(
            {
                "tconst": document.id,
                "primaryTitle": document.title,
                "originalTitle": metadata.get("original_title", document.title),
                "isAdult": "true" if metadata.get("is_adult") else "false",
                "startYear": _format_optional(metadata.get("start_year")),
                "runtimeMinutes": _format_optional(metadata.get("runtime_minutes")),
                "genres": document.genres,
                "averageRating": "\\N" if rating is None else f"{rating:.2f}",
                "synopsis": " ".join((document.body or "").split()),
            }
        )
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows, columns=COLUMNS).to_csv(path, index=False)
    logger.info("Saved %d documents to %s", len(rows), path)
