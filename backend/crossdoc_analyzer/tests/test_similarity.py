"""
Unit tests for the lexical similarity library.

Covers the individual metrics, the combined score and best-match selection.
"""

import pytest

from crossdoc_analyzer.alignment.similarity import (
    are_similar,
    combined_similarity,
    cosine_similarity,
    find_best_match,
    jaccard_similarity,
    levenshtein_distance,
    levenshtein_similarity,
    normalize_text,
    tokenize,
)


ALL_METRICS = [jaccard_similarity, cosine_similarity, levenshtein_similarity, combined_similarity]


# =============================================================================
# Text Preparation
# =============================================================================

class TestTextPreparation:
    """Test normalization and tokenization."""

    def test_normalize_lowercases_and_strips_punctuation(self):
        """Punctuation becomes whitespace and runs of whitespace collapse."""
        assert normalize_text("  Change-from  Baseline, (HbA1c)! ") == "change from baseline hba1c"

    def test_normalize_empty(self):
        """None and empty strings normalize to empty."""
        assert normalize_text(None) == ""
        assert normalize_text("") == ""

    def test_tokenize_removes_stopwords(self):
        """Stopwords are dropped for token metrics."""
        assert tokenize("To evaluate the efficacy of drug X") == ["evaluate", "efficacy", "drug", "x"]

    def test_tokenize_keeps_stopwords_when_asked(self):
        """Stopword removal can be disabled."""
        assert "the" in tokenize("the drug", remove_stopwords=False)


# =============================================================================
# Metric Edge Cases
# =============================================================================

class TestMetricIdentities:
    """Identity and empty-input definitions shared by every metric."""

    @pytest.mark.parametrize("metric", ALL_METRICS)
    def test_identical_strings_score_one(self, metric):
        """Identical non-empty strings score exactly 1.0."""
        text = "Change from baseline in HbA1c at Week 26"
        assert metric(text, text) == 1.0

    @pytest.mark.parametrize("metric", ALL_METRICS)
    def test_both_empty_score_one(self, metric):
        """Two empty strings score 1.0 by definition."""
        assert metric("", "") == 1.0

    @pytest.mark.parametrize("metric", ALL_METRICS)
    def test_scores_within_unit_interval(self, metric):
        """Scores stay within [0, 1]."""
        score = metric("overall survival", "progression-free survival at 12 months")
        assert 0.0 <= score <= 1.0


class TestJaccard:
    """Test Jaccard word-set similarity."""

    def test_disjoint_vocabularies_score_zero(self):
        """No shared words gives 0.0."""
        assert jaccard_similarity("apple banana", "cherry grape") == 0.0

    def test_partial_overlap(self):
        """Shared words over the union."""
        assert jaccard_similarity("efficacy of drug", "efficacy of placebo") == pytest.approx(1 / 3)

    def test_one_side_empty(self):
        """Only one empty side gives 0.0."""
        assert jaccard_similarity("", "drug") == 0.0

    def test_case_insensitive(self):
        """Token comparison ignores case."""
        assert jaccard_similarity("Overall Survival", "overall survival") == 1.0

    def test_stopword_only_texts_compared(self):
        """Texts made only of stopwords compare their stopwords."""
        assert jaccard_similarity("the", "a") == 0.0
        assert jaccard_similarity("to be", "to") == pytest.approx(1 / 2)
        assert jaccard_similarity("the", "the") == 1.0


class TestCosine:
    """Test cosine similarity over term frequencies."""

    def test_repetition_matters(self):
        """Repeated words change the score, unlike Jaccard."""
        a, b = "drug drug safety", "drug safety"
        assert jaccard_similarity(a, b) == 1.0
        assert cosine_similarity(a, b) == pytest.approx(3 / 10 ** 0.5)

    def test_one_side_empty(self):
        """Only one empty side gives 0.0."""
        assert cosine_similarity("drug", "") == 0.0

    def test_stopword_only_texts_compared(self):
        assert cosine_similarity("the", "a") == 0.0


class TestLevenshtein:
    """Test edit distance and its normalized similarity."""

    def test_classic_distance(self):
        """kitten -> sitting needs three edits."""
        assert levenshtein_distance("kitten", "sitting") == 3

    def test_distance_to_empty(self):
        """Distance to an empty string is the other length."""
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abc", "") == 3

    def test_disjoint_equal_length_scores_zero(self):
        """Every character differs: similarity 0.0."""
        assert levenshtein_similarity("abc", "xyz") == 0.0

    def test_small_typo_scores_high(self):
        """A single typo keeps similarity high."""
        assert levenshtein_similarity("pharmacokinetics", "pharmacokinetcs") > 0.9


# =============================================================================
# Combined Score
# =============================================================================

class TestCombinedSimilarity:
    """Test the weighted combination."""

    def test_objective_wording_scenario(self):
        """Near-identical objectives align above 0.8."""
        score = combined_similarity(
            "To evaluate efficacy of drug X",
            "To evaluate the efficacy of drug X",
        )
        assert score > 0.8

    def test_custom_weights_select_metric(self):
        """All weight on Jaccard reproduces Jaccard."""
        a, b = "efficacy of drug", "efficacy of placebo"
        assert combined_similarity(a, b, weights=(1, 0, 0)) == pytest.approx(jaccard_similarity(a, b))

    def test_weights_are_normalized(self):
        """Weights are divided by their sum."""
        a, b = "overall survival", "overall response rate"
        assert combined_similarity(a, b, weights=(3, 3, 4)) == pytest.approx(combined_similarity(a, b))

    def test_invalid_weights_raise(self):
        """Wrong arity or non-positive weights are rejected."""
        with pytest.raises(ValueError):
            combined_similarity("a", "b", weights=(1, 1))
        with pytest.raises(ValueError):
            combined_similarity("a", "b", weights=(0, 0, 0))

    def test_are_similar_threshold(self):
        """Boolean gate uses the threshold."""
        assert are_similar("overall survival", "Overall survival.")
        assert not are_similar("overall survival", "adverse events of special interest")
        assert are_similar("overall survival", "overall response", threshold=0.0)


# =============================================================================
# Best Match
# =============================================================================

class TestFindBestMatch:
    """Test best-candidate selection."""

    @pytest.fixture
    def candidates(self):
        return [
            {"id": "E1", "text": "Incidence of adverse events"},
            {"id": "E2", "text": "Change from baseline in HbA1c at week 26"},
            {"id": "E3", "text": "Change from baseline in body weight"},
        ]

    def test_picks_highest_score(self, candidates):
        """The closest candidate wins."""
        match = find_best_match("Change from baseline in HbA1c at Week 26", candidates, lambda c: c["text"])
        assert match is not None
        assert match.candidate["id"] == "E2"
        assert match.index == 1
        assert match.score == pytest.approx(1.0)

    def test_no_match_below_threshold(self, candidates):
        """Nothing above the threshold returns None."""
        assert find_best_match("Overall survival", candidates, lambda c: c["text"]) is None

    def test_empty_candidates(self):
        """Empty candidate list returns None."""
        assert find_best_match("anything", [], lambda c: c) is None

    def test_tie_goes_to_first_candidate(self):
        """Equal scores keep the earliest candidate."""
        candidates = [{"id": "A", "text": "overall survival"}, {"id": "B", "text": "overall survival"}]
        match = find_best_match("overall survival", candidates, lambda c: c["text"])
        assert match.candidate["id"] == "A"
        assert match.index == 0

    def test_deterministic(self, candidates):
        """Repeated calls give the same match and score."""
        query = "Change from baseline in body weight at week 26"
        results = {
            (m.candidate["id"], m.score)
            for m in (find_best_match(query, candidates, lambda c: c["text"], threshold=0.5) for _ in range(5))
        }
        assert len(results) == 1
