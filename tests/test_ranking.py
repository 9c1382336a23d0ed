import math

import pytest

from content_ranking import (
    CategoryPolicy,
    Document,
    DocumentNotFoundError,
    InvalidConfigurationError,
    RankedDocument,
    Ranker,
    RankerConfig,
    categorical_overlap,
)

from conftest import EXAMPLE_DOCUMENTS, FILMS


@pytest.mark.parametrize(
    "a, b, policy, expected",
    [
        ({"Drama"}, {"Drama", "Crime"}, CategoryPolicy.ASYMMETRIC, 0.5),
        ({"Drama", "Crime"}, {"Drama"}, CategoryPolicy.ASYMMETRIC, 1.0),
        ({"Drama"}, {"Drama", "Crime"}, CategoryPolicy.SYMMETRIC, 0.5),
        ({"Drama", "Crime"}, {"Drama"}, CategoryPolicy.SYMMETRIC, 0.5),
        ({"Action", "Sci-Fi"}, {"Sci-Fi", "Horror", "Action"}, CategoryPolicy.SYMMETRIC, 2 / 3),
        ({"Drama"}, {"Comedy"}, CategoryPolicy.ASYMMETRIC, 0.0),
        (set(), {"Comedy"}, CategoryPolicy.SYMMETRIC, 0.0),
        ({"Comedy"}, set(), CategoryPolicy.ASYMMETRIC, 0.0),
    ],
)
def test_categorical_overlap(a, b, policy, expected):
    assert categorical_overlap(frozenset(a), frozenset(b), policy) == pytest.approx(expected)


class TestWorkedExample:
    def test_rank_single(self, example_ranker):
        results = example_ranker.rank_single("A", 2)
        assert [doc_id for doc_id, _ in results] == ["C", "B"]
        assert results[0].score == pytest.approx(0.2)
        assert 0.0 < results[1].score < 0.2

    def test_symmetric_policy_gives_same_order(self, example_model):
        ranker = Ranker(example_model, RankerConfig(category_policy="symmetric"))
        assert [doc_id for doc_id, _ in ranker.rank_single("A", 2)] == ["C", "B"]

    def test_prompt_without_tag_bonus(self, example_ranker):
        results = example_ranker.rank_by_prompt("space robots", 3)
        assert results[0].doc_id == "C"
        assert results[0].score == pytest.approx(2 / math.sqrt(6))
        assert [score for _, score in results[1:]] == [0.0, 0.0]
        # Ties fall back to corpus order.
        assert [doc_id for doc_id, _ in results[1:]] == ["A", "B"]

    def test_prompt_with_tag_bonus(self, example_ranker):
        results = example_ranker.rank_by_prompt("sci-fi robots", 3)
        assert [doc_id for doc_id, _ in results] == ["C", "A", "B"]
        assert results[0].score == pytest.approx(1 / math.sqrt(3) + 0.05)
        assert results[1].score == pytest.approx(0.05)
        assert results[2].score == 0.0

    def test_combined_score_is_directional(self):
        ranker = Ranker.from_documents(
            [
                Document("x", body="heist crew", genres="Crime"),
                Document("y", body="heist plan", genres="Crime,Drama"),
            ]
        )
        assert ranker.combined_score("x", "y") == pytest.approx(
            ranker.combined_score("y", "x") - 0.2 * 0.5
        )


class TestRankSingle:
    def test_excludes_reference(self, film_ranker):
        for doc_id in film_ranker.store.ids:
            results = film_ranker.rank_single(doc_id, 100)
            assert doc_id not in [other for other, _ in results]
            assert len(results) == len(FILMS) - 1

    def test_sorted_and_bounded(self, film_ranker):
        for doc_id in film_ranker.store.ids:
            scores = [score for _, score in film_ranker.rank_single(doc_id, 5)]
            assert scores == sorted(scores, reverse=True)
            assert all(0.0 <= score <= 1.0 for score in scores)

    def test_prefix_property(self, film_ranker):
        full = film_ranker.rank_single("tt01", len(FILMS))
        for k in range(len(FILMS)):
            assert film_ranker.rank_single("tt01", k) == full[:k]

    def test_ties_broken_by_corpus_order(self):
        ranker = Ranker.from_documents(
            [
                Document("A", body="a robot falls in love", genres="sci-fi"),
                Document("B", body="a love story in paris", genres="romance"),
                Document("C", body="robots and love in space", genres="sci-fi"),
                Document("D", body="love in", genres="sci-fi"),
            ]
        )
        # "love" and "in" are in every body, so C and D score 0.2 against A from genre alone.
        results = ranker.rank_single("A", 3)
        assert [doc_id for doc_id, _ in results[:2]] == ["C", "D"]
        assert results[0].score == results[1].score

    def test_empty_body_ranks_by_category(self, film_ranker):
        results = dict(film_ranker.rank_single("tt07", 10))
        assert results["tt03"] == pytest.approx(0.2 * 1 / 3)
        assert results["tt01"] == 0.0

    def test_single_document_corpus(self):
        ranker = Ranker.from_documents([Document("only", body="lonely film")])
        assert ranker.rank_single("only", 5) == []

    def test_k_zero(self, film_ranker):
        assert film_ranker.rank_single("tt01", 0) == []

    @pytest.mark.parametrize("k", [-1, 1.5, "3", True])
    def test_invalid_k(self, film_ranker, k):
        with pytest.raises(InvalidConfigurationError):
            film_ranker.rank_single("tt01", k)

    def test_unknown_id(self, film_ranker):
        with pytest.raises(DocumentNotFoundError):
            film_ranker.rank_single("tt99", 3)


class TestRankFromSet:
    def test_single_reference_matches_rank_single(self, film_ranker):
        for doc_id in film_ranker.store.ids:
            assert film_ranker.rank_from_set([doc_id], 4) == film_ranker.rank_single(doc_id, 4)

    def test_repeated_reference_counts_once(self, film_ranker):
        assert film_ranker.rank_from_set(["tt03", "tt03"], 4) == film_ranker.rank_single("tt03", 4)

    def test_excludes_references(self, film_ranker):
        references = ["tt01", "tt05", "tt08"]
        results = film_ranker.rank_from_set(references, 100)
        assert len(results) == len(FILMS) - len(references)
        assert not set(references) & {doc_id for doc_id, _ in results}

    def test_mean_score(self, film_ranker):
        references = ["tt03", "tt04"]
        for doc_id, score in film_ranker.rank_from_set(references, 100):
            expected = sum(film_ranker.combined_score(r, doc_id) for r in references) / 2
            assert score == pytest.approx(expected)

    def test_category_only_candidate(self, film_ranker):
        # tt07 has no synopsis but shares every genre of its own with both references.
        results = dict(film_ranker.rank_from_set(["tt03", "tt04"], 100))
        assert results["tt07"] == pytest.approx(0.2)

    def test_empty_set(self, film_ranker):
        assert film_ranker.rank_from_set([], 5) == []

    def test_unknown_reference(self, film_ranker):
        with pytest.raises(DocumentNotFoundError):
            film_ranker.rank_from_set(["tt01", "tt99"], 3)


class TestRankByPrompt:
    def test_scores_clamped(self):
        ranker = Ranker.from_documents(
            [
                Document("x", body="drama comedy crime", genres="Drama,Comedy,Crime"),
                Document("y", body="quiet documentary", genres="Documentary"),
            ],
            RankerConfig(genre_boost_per_match=0.5),
        )
        results = ranker.rank_by_prompt("drama comedy crime", 2)
        assert results[0] == RankedDocument("x", 1.0)
        assert results[1] == RankedDocument("y", 0.0)

    def test_tag_match_is_case_insensitive(self, film_ranker):
        results = dict(film_ranker.rank_by_prompt("Something HORROR-ish", 10))
        assert results["tt05"] == pytest.approx(0.05)
        assert all(score == 0.0 for doc_id, score in results.items() if doc_id != "tt05")

    def test_returns_whole_corpus_when_k_large(self, film_ranker):
        results = film_ranker.rank_by_prompt("a robot in space", 100)
        assert len(results) == len(FILMS)
        assert results[0].doc_id == "tt08"

    def test_prompt_not_added_to_corpus(self, film_ranker):
        before = film_ranker.rank_single("tt01", 7)
        film_ranker.rank_by_prompt("hacker rebellion simulation machines", 3)
        assert film_ranker.store.document_frequency("hacker") == 1
        assert film_ranker.rank_single("tt01", 7) == before

    def test_empty_corpus(self):
        ranker = Ranker.from_documents([])
        assert ranker.rank_by_prompt("anything", 5) == []
        assert ranker.rank_from_set([], 5) == []

    def test_k_zero(self, film_ranker):
        assert film_ranker.rank_by_prompt("robot", 0) == []


class TestPrecompute:
    @pytest.mark.parametrize("threshold", [0.0, 0.05, 0.2])
    def test_table_matches_on_the_fly(self, film_model, threshold):
        plain = Ranker(film_model)
        cached = Ranker(film_model)
        cached.precompute_all_pairs(threshold)
        assert cached.table is not None
        for doc_id in plain.store.ids:
            for k in range(len(FILMS) + 1):
                assert cached.rank_single(doc_id, k) == plain.rank_single(doc_id, k)

    def test_threshold_filters_rows(self, film_ranker):
        table = film_ranker.precompute_all_pairs(0.1)
        for doc_id in film_ranker.store.ids:
            row = table.row(doc_id)
            assert all(score >= 0.1 for _, score in row)
            assert doc_id not in [other for other, _ in row]

    def test_complete_table_has_every_pair(self, film_ranker):
        table = film_ranker.precompute_all_pairs()
        n = len(FILMS)
        assert table.complete
        assert table.pair_count == n * (n - 1)

    def test_parallel_matches_serial(self, film_model):
        serial = Ranker(film_model, RankerConfig(num_workers=1)).precompute_all_pairs()
        parallel = Ranker(
            film_model, RankerConfig(num_workers=4, min_documents_for_parallel=0)
        ).precompute_all_pairs(show_progress=True)
        for doc_id in film_model.store.ids:
            assert parallel.row(doc_id) == serial.row(doc_id)

    def test_uses_configured_threshold(self, film_model):
        ranker = Ranker(film_model, RankerConfig(similarity_threshold=0.15))
        assert ranker.precompute_all_pairs().threshold == 0.15

    def test_empty_corpus(self):
        table = Ranker.from_documents([]).precompute_all_pairs()
        assert len(table) == 0
        assert table.pair_count == 0


def test_from_documents_default_config():
    ranker = Ranker.from_documents(EXAMPLE_DOCUMENTS)
    assert ranker.config == RankerConfig()
    assert len(ranker.store) == 3
