"""
Command-line access to the ranking engine.

Usage:
    content-ranking --data data/processed/processedMovies.csv similar "The Matrix" --by-title
    content-ranking --data movies.csv similar tt0133093 tt0088247 --top 5
    content-ranking --data movies.csv prompt "a sci-fi adventure with robots and space travel"
    content-ranking --data movies.csv precompute --output data/processed/similarity.json --threshold 0.1

Scoring options default to RankerConfig (and CONTENT_RANKING_* environment
variables); flags given on the command line take precedence.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from content_ranking.config import CategoryPolicy, RankerConfig
from content_ranking.documents import Document
from content_ranking.exceptions import ContentRankingError
from content_ranking.ranking import RankedDocument, Ranker, SimilarityTable
from content_ranking.records import load_documents


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="content-ranking",
        description="Rank films by synopsis and genre similarity.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--data", required=True, help="Processed film CSV file")
    parser.add_argument("--top", type=int, default=10, help="Number of results (default: 10)")
    parser.add_argument("--content-weight", type=float, help="Weight of synopsis similarity")
    parser.add_argument("--category-weight", type=float, help="Weight of genre overlap")
    parser.add_argument(
        "--policy",
        choices=[policy.value for policy in CategoryPolicy],
        help="Genre overlap policy",
    )
    parser.add_argument("--boost", type=float, help="Prompt bonus per mentioned genre")
    parser.add_argument("--table", help="Precomputed similarity table (JSON) to reuse if present")
    parser.add_argument("--progress", action="store_true", help="Show progress bars")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log build details")

    subparsers = parser.add_subparsers(dest="command", required=True)

    similar = subparsers.add_parser("similar", help="Films similar to one or more films")
    similar.add_argument("references", nargs="+", help="Film ids (or titles with --by-title)")
    similar.add_argument("--by-title", action="store_true", help="Treat references as titles")

    prompt = subparsers.add_parser("prompt", help="Films matching a free-text description")
    prompt.add_argument("text", help="Description of the film you are looking for")

    precompute = subparsers.add_parser("precompute", help="Build and save the all-pairs table")
    precompute.add_argument("--output", required=True, help="Where to write the table (JSON)")
    precompute.add_argument("--threshold", type=float, help="Minimum score kept")

    return parser


def _display_results(ranker: Ranker, results: list[RankedDocument], source: str) -> None:
    print(f"\nTop {len(results)} films similar to {source}:")
    print("-" * 52)
    if not results:
        print("No similar films found.")
        return
    for rank, (doc_id, score) in enumerate(results, start=1):
        document = ranker.store.get(doc_id)
        year = document.metadata.get("start_year")
        suffix = f" ({year})" if year is not None else ""
        print(f"{rank}. {document.title}{suffix} - {score:.2f} similarity")
        print(f"   Genres: {document.genres or 'Unknown'}")
        rating = document.metadata.get("average_rating")
        if rating is not None:
            print(f"   Rating: {rating}")


def _resolve(ranker: Ranker, references: list[str], by_title: bool) -> list[Document]:
    if not by_title:
        return [ranker.store.get(reference) for reference in references]
    documents = []
    for title in references:
        document = ranker.store.find_by_title(title)
        if document is None:
            raise SystemExit(f"No film matching title {title!r}")
        documents.append(document)
    return documents


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = RankerConfig.from_env().with_overrides(
            content_weight=args.content_weight,
            category_weight=args.category_weight,
            category_policy=args.policy,
            genre_boost_per_match=args.boost,
        )
        ranker = Ranker.from_documents(
            load_documents(args.data), config, show_progress=args.progress
        )
        print(f"Loaded {len(ranker.store)} films from {args.data}")

        if args.table and Path(args.table).exists() and args.command != "precompute":
            if ranker.attach_table(SimilarityTable.load(args.table, ranker.store)):
                print(f"Using similarity table {args.table}")

        if args.command == "similar":
            documents = _resolve(ranker, args.references, args.by_title)
            ids = [document.id for document in documents]
            if len(ids) == 1:
                results = ranker.rank_single(ids[0], args.top)
            else:
                results = ranker.rank_from_set(ids, args.top)
            source = ", ".join(f'"{document.title}"' for document in documents)
            _display_results(ranker, results, source)
        elif args.command == "prompt":
            results = ranker.rank_by_prompt(args.text, args.top)
            _display_results(ranker, results, f'your prompt "{args.text}"')
        elif args.command == "precompute":
            table = ranker.precompute_all_pairs(args.threshold, show_progress=args.progress)
            table.save(args.output)
            print(f"Saved {table.pair_count} pairs for {len(table)} films to {args.output}")
    except (ContentRankingError, OSError) as e:
        raise SystemExit(f"error: {e}") from e

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
