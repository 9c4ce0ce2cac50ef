"""Tests for ownership filtering, deduplication and ranking."""

from booktracker.domain.entities import CandidateRecommendation
from booktracker.services.curator import book_key, curate


def _c(title: str, score: float, author: str = "Someone") -> CandidateRecommendation:
    return CandidateRecommendation(
        title=title, author=author, reason=f"Because of {title}.", confidence_score=score
    )


def test_owned_books_are_filtered_case_insensitively():
    candidates = [_c("Dune", 4.8, "Frank Herbert"), _c("Hyperion", 4.0, "Dan Simmons")]

    result = curate(candidates, [("  dune ", "FRANK  HERBERT")], 5)

    assert [c.title for c in result] == ["Hyperion"]


def test_duplicates_keep_highest_confidence():
    candidates = [_c("Circe", 3.1), _c("Piranesi", 4.0), _c("CIRCE", 4.6), _c("circe", 2.0)]

    result = curate(candidates, [], 5)

    assert [(c.title, c.confidence_score) for c in result] == [("CIRCE", 4.6), ("Piranesi", 4.0)]


def test_same_title_by_different_authors_is_not_a_duplicate():
    result = curate([_c("Emma", 4.0, "Jane Austen"), _c("Emma", 3.0, "Alexander McCall Smith")], [], 5)
    assert len(result) == 2


def test_sorted_descending_with_stable_ties():
    candidates = [_c("A", 3.0), _c("B", 4.5), _c("C", 3.0), _c("D", 4.5), _c("E", 1.0)]

    result = curate(candidates, [], 5)

    assert [c.title for c in result] == ["B", "D", "A", "C", "E"]


def test_truncates_to_requested_count():
    candidates = [_c(f"Book {i}", 5 - i * 0.1) for i in range(12)]

    result = curate(candidates, [], 4)

    assert [c.title for c in result] == ["Book 0", "Book 1", "Book 2", "Book 3"]


def test_short_list_is_not_padded():
    candidates = [_c("Only", 4.0), _c("Owned", 5.0)]

    result = curate(candidates, [("Owned", "Someone")], 10)

    assert [c.title for c in result] == ["Only"]
    assert curate([], [], 10) == []


def test_out_of_range_scores_are_clamped():
    result = curate([_c("High", 7.5), _c("Low", -1.0)], [], 5)
    assert [c.confidence_score for c in result] == [5.0, 0.0]


def test_book_key_collapses_whitespace_and_case():
    assert book_key("The  Name of\tthe Rose", "Umberto Eco") == book_key(
        "the name of the rose", " UMBERTO ECO "
    )
