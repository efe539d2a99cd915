"""Unit tests for title and author normalization."""

import pytest

from ace.core.normalization import (
    clean_text,
    has_math_delimiters,
    normalize_author_names,
    normalize_title,
    strip_math_markup,
    titles_equivalent,
)


class TestMathMarkup:
    """Tests for LaTeX delimiter handling."""

    @pytest.mark.parametrize(
        "title",
        [
            "Learning with $O(n)$ memory",
            r"A \(k\)-means variant",
            r"The \mathbf{X} factor",
            "Display $$x^2$$ math",
        ],
    )
    def test_detects_markup(self, title: str) -> None:
        assert has_math_delimiters(title)

    def test_plain_title_has_no_markup(self) -> None:
        assert not has_math_delimiters("Fast Learning: A Survey")
        assert not has_math_delimiters(None)

    def test_strip_keeps_content(self) -> None:
        assert strip_math_markup(r"The $\mathbf{X}$ factor") == "The X factor"

    def test_strip_nested_styling(self) -> None:
        assert strip_math_markup(r"\textbf{\emph{Bold}} move") == "Bold move"

    def test_symbols_rendered(self) -> None:
        assert strip_math_markup(r"$\alpha$-stable laws") == "α-stable laws"


class TestTitles:
    """Tests for title equivalence."""

    def test_normalize_collapses_whitespace_and_case(self) -> None:
        assert normalize_title("  Fast   LEARNING\n") == "fast learning"

    def test_normalize_empty(self) -> None:
        assert normalize_title(None) == ""
        assert normalize_title("") == ""

    def test_equivalent_ignores_math_markup(self) -> None:
        assert titles_equivalent(r"On $\mathcal{O}(1)$ Updates", "On O(1) Updates")

    def test_punctuation_is_significant(self) -> None:
        assert not titles_equivalent("Fast Learning: A Survey", "Fast Learning - A Survey")

    def test_unicode_compatibility_forms(self) -> None:
        assert titles_equivalent("ﬁne-tuning", "fine-tuning")

    def test_missing_title_never_matches(self) -> None:
        assert not titles_equivalent(None, "Fast Learning")
        assert not titles_equivalent("Fast Learning", "")


def test_clean_text() -> None:
    assert clean_text("  a \n b  ") == "a b"
    assert clean_text("   ") is None
    assert clean_text(None) is None


def test_normalize_author_names_drops_blanks() -> None:
    assert normalize_author_names(["Ada  Lovelace", "", None, " Alan Turing "]) == [
        "Ada Lovelace",
        "Alan Turing",
    ]
