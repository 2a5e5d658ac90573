"""
Unit tests for the local IAST to Hunterian transform.
"""

import pytest

from lipyantar.schemes import IAST_TO_HUNTERIAN, iast_to_hunterian, strip_combining_marks


class TestSubstitutionTable:
    """Tests for the fixed substitution table."""

    def test_every_mapped_character_once(self):
        """A string holding every mapped character converts per the table."""
        source = "".join(IAST_TO_HUNTERIAN.keys())
        expected = "".join(IAST_TO_HUNTERIAN.values())

        assert iast_to_hunterian(source) == expected
        assert expected == "aiuririleomhngntdnshsh"

    @pytest.mark.parametrize(
        "iast,hunterian",
        [
            ("gujarātī", "gujarati"),
            ("bhāṣā", "bhasha"),
            ("śikṣaṇa", "shikshana"),
            ("kṛṣṇa", "krishna"),
            ("saṃskṛta", "samskrita"),
            ("aṅga", "anga"),
            ("jñāna", "jnana"),
        ],
    )
    def test_words(self, iast, hunterian):
        assert iast_to_hunterian(iast) == hunterian

    def test_sources_are_disjoint(self):
        """Each source is a single distinct character."""
        assert all(len(source) == 1 for source in IAST_TO_HUNTERIAN)
        assert len(set(IAST_TO_HUNTERIAN)) == len(IAST_TO_HUNTERIAN)


class TestNormalisation:
    """Tests for case folding, apostrophes and leftover marks."""

    def test_lowercases(self):
        assert iast_to_hunterian("Gujarāt") == "gujarat"

    def test_uppercase_diacritics_are_folded_first(self):
        assert iast_to_hunterian("Ā Ś") == "a sh"

    def test_apostrophes_removed(self):
        assert iast_to_hunterian("so'ham") == "soham"

    def test_decomposed_input_is_handled(self):
        """a + combining macron behaves like the precomposed letter."""
        assert iast_to_hunterian("a\u0304") == "a"
        assert iast_to_hunterian("s\u0301iva") == "shiva"

    def test_unmapped_diacritics_are_stripped(self):
        assert iast_to_hunterian("x\u0304") == "x"
        assert iast_to_hunterian("\u0233") == "y"

    def test_empty(self):
        assert iast_to_hunterian("") == ""

    def test_plain_text_unchanged(self):
        assert iast_to_hunterian("plain text, 42!") == "plain text, 42!"

    def test_strip_combining_marks(self):
        assert strip_combining_marks("ṁ") == "m"

    @pytest.mark.parametrize("text", ["ગુજરાતી", "નવું", "ક્ષ", "हिन्दी"])
    def test_non_latin_marks_are_kept(self, text):
        assert strip_combining_marks(text) == text
        assert iast_to_hunterian(text) == text

    def test_mixed_scripts(self):
        assert iast_to_hunterian("x\u0304 ગુજરાતી") == "x ગુજરાતી"
