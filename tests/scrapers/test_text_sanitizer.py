"""Tests for scraped text cleaning."""

from voc_pipeline.scrapers.text_sanitizer import (
    clean_reviewer_name,
    clean_text,
    normalize_for_fingerprint,
    strip_ui_suffix,
)


class TestCleanText:
    def test_strips_tags_and_scripts(self):
        raw = "<div>Nice <b>staff</b><script>alert(1)</script></div>"
        assert clean_text(raw) == "Nice staff"

    def test_decodes_entities(self):
        assert clean_text("Fish &amp; chips &lt;3") == "Fish & chips <3"

    def test_invisible_characters(self):
        assert clean_text("Good\u200bservice\xa0here\ufeff") == "Goodservice here"

    def test_collapses_whitespace(self):
        assert clean_text("  a\n\n  b\t c  ") == "a b c"

    def test_truncates_on_word_boundary(self):
        assert clean_text("one two three four", max_length=10) == "one two..."

    def test_empty(self):
        assert clean_text(None) == ""
        assert clean_text("") == ""


class TestFingerprintNormalization:
    def test_case_and_quotes(self):
        assert normalize_for_fingerprint("“Great Service”") == normalize_for_fingerprint('"great service"')

    def test_read_more_suffix(self):
        assert normalize_for_fingerprint("Loved it, will return. Read more") == "loved it, will return"

    def test_strip_ui_suffix_keeps_short_text(self):
        assert strip_ui_suffix("see more") == "see more"


class TestReviewerName:
    def test_by_prefix(self):
        assert clean_reviewer_name("By Jane D.") == "Jane D."

    def test_empty_name(self):
        assert clean_reviewer_name("   ") is None
