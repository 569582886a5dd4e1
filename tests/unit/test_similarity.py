import math
import random
from collections import Counter

import numpy as np
import pytest

from knowledge_engine.deduplication.similarity import (
    SimilarityCalculator, bag_distance, cosine_similarity, fuzzy_similarity,
    is_finite_vector, levenshtein_distance, max_edit_distance,
    normalize_for_exact, normalize_whitespace
)


class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_symmetric(self):
        a, b = [0.3, -0.2, 0.9], [0.1, 0.4, 0.5]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    @pytest.mark.parametrize("a,b", [
        ([0.0, 0.0], [1.0, 0.0]),
        ([], []),
        ([1.0, 0.0], [1.0, 0.0, 0.0]),
        (None, [1.0]),
    ])
    def test_degenerate_inputs_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0

    def test_result_is_clamped(self):
        vector = [0.1] * 1000
        assert -1.0 <= cosine_similarity(vector, vector) <= 1.0


class TestNormalization:

    def test_normalize_whitespace(self):
        assert normalize_whitespace("  Hello \n\t World  ") == "hello world"

    def test_normalize_for_exact_casefolds(self):
        assert normalize_for_exact("STRASSE") == normalize_for_exact("straße")

    def test_none_is_empty(self):
        assert normalize_whitespace(None) == ""


class TestLevenshtein:

    @pytest.mark.parametrize("a,b,expected", [
        ("", "", 0),
        ("abc", "", 3),
        ("", "abc", 3),
        ("kitten", "sitting", 3),
        ("flaw", "lawn", 2),
        ("same", "same", 0),
        ("東京", "大阪", 2),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected
        assert levenshtein_distance(b, a) == expected

    def test_bounded_distance_within_bound(self):
        assert levenshtein_distance("kitten", "sitting", max_distance=3) == 3
        assert levenshtein_distance("kitten", "sitting", max_distance=5) == 3

    def test_bounded_distance_exceeding_bound(self):
        assert levenshtein_distance("kitten", "sitting", max_distance=2) == 3
        assert levenshtein_distance("abcdefgh", "zyxwvuts", max_distance=1) == 2

    def test_bounded_matches_full_computation(self):
        rng = random.Random(7)
        for _ in range(200):
            a = ''.join(rng.choice("abcd") for _ in range(rng.randint(0, 12)))
            b = ''.join(rng.choice("abcd") for _ in range(rng.randint(0, 12)))
            bound = rng.randint(0, 8)
            full = levenshtein_distance(a, b)
            bounded = levenshtein_distance(a, b, max_distance=bound)
            assert bounded == (full if full <= bound else bound + 1)

    def test_bag_distance_is_a_lower_bound(self):
        rng = random.Random(11)
        for _ in range(100):
            a = ''.join(rng.choice("abcxyz") for _ in range(rng.randint(0, 15)))
            b = ''.join(rng.choice("abcxyz") for _ in range(rng.randint(0, 15)))
            assert bag_distance(Counter(a), Counter(b)) <= levenshtein_distance(a, b)


class TestFuzzySimilarity:

    def test_identical_after_normalization(self):
        assert fuzzy_similarity("Hello   World", "hello world") == 1.0

    def test_both_empty(self):
        assert fuzzy_similarity("", "   ") == 1.0

    def test_one_empty(self):
        assert fuzzy_similarity("abc", "") == 0.0

    def test_score(self):
        # 3 edits over 7 characters
        assert fuzzy_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_max_edit_distance(self):
        assert max_edit_distance(100, 0.8) == 20
        assert max_edit_distance(7, 0.8) == 1
        assert max_edit_distance(10, 1.0) == 0

    @pytest.mark.parametrize("a,b", [
        ("kitten", "sitting"),
        ("abc", "a"),
        ("Headquarters in Tokyo", "HQ in Tokyo, Japan"),
        ("東京本社", "東京の本社ビル"),
        ("", "non-empty"),
    ])
    def test_symmetric_for_unequal_lengths(self, a, b):
        assert fuzzy_similarity(a, b) == fuzzy_similarity(b, a)
        for bound in range(0, 8):
            assert levenshtein_distance(a, b, max_distance=bound) == \
                levenshtein_distance(b, a, max_distance=bound)


class TestSimilarityCalculator:

    @pytest.fixture
    def calculator(self):
        return SimilarityCalculator(similarity_threshold=0.95)

    def test_similarity_to_many(self, calculator):
        scores = calculator.similarity_to_many([1.0, 0.0], [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])

        assert scores == pytest.approx([1.0, 0.0, math.sqrt(0.5)])

    def test_similarity_to_many_scores_mismatched_dimensions_zero(self, calculator):
        scores = calculator.similarity_to_many([1.0, 0.0], [[1.0, 0.0, 0.0], None, [2.0, 0.0]])

        assert scores == pytest.approx([0.0, 0.0, 1.0])

    def test_similarity_to_many_empty(self, calculator):
        assert len(calculator.similarity_to_many([1.0], [])) == 0

    def test_similarity_to_many_scores_non_finite_zero(self, calculator):
        scores = calculator.similarity_to_many([1.0, 0.0], [[1.0, 0.0], [math.nan, 1.0], [math.inf, 0.0]])

        assert scores == pytest.approx([1.0, 0.0, 0.0])

    def test_non_finite_target_scores_zero(self, calculator):
        scores = calculator.similarity_to_many([math.nan, 0.0], [[1.0, 0.0], [0.0, 1.0]])

        assert list(scores) == [0.0, 0.0]

    @pytest.mark.parametrize("vector,expected", [
        ([1.0, 0.0], True),
        ([math.nan, 1.0], False),
        ([1.0, -math.inf], False),
        ([], False),
        (None, False),
    ])
    def test_is_finite_vector(self, vector, expected):
        assert is_finite_vector(vector) is expected

    def test_radius_neighbors_includes_boundary_and_excludes_self(self, calculator):
        angle = math.acos(0.95)
        embeddings = [
            [1.0, 0.0],
            [math.cos(angle), math.sin(angle)],
            [0.0, 1.0],
        ]
        result = calculator.radius_neighbors(embeddings, [0, 1, 2])

        assert set(result) == {0, 1}
        assert set(result[0]) == {1}
        assert result[0][1] == pytest.approx(0.95)
        assert 2 not in result

    def test_radius_neighbors_skips_zero_vectors(self, calculator):
        result = calculator.radius_neighbors([[0.0, 0.0], [0.0, 0.0], [1.0, 0.0]], [0, 1, 2])

        assert result == {}

    def test_radius_neighbors_matches_brute_force(self, calculator):
        rng = np.random.default_rng(3)
        base = rng.normal(size=(20, 16))
        embeddings = np.vstack([base, base[:5] + rng.normal(scale=0.01, size=(5, 16))])
        result = calculator.radius_neighbors(embeddings.tolist(), list(range(len(embeddings))), 0.9)

        for i in range(len(embeddings)):
            for j in range(len(embeddings)):
                if i == j:
                    continue
                expected = cosine_similarity(embeddings[i], embeddings[j]) >= 0.9
                assert (j in result.get(i, {})) == expected
