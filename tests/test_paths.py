"""Tests for library URL and page-path helpers."""

from __future__ import annotations

from urllib.parse import unquote

from polyglot_engine.library.paths import (
    assemble_path,
    compute_page_segment,
    encode_page_path,
    parse_library_url,
    parse_page_path,
)


class TestParseLibraryUrl:
    """Tests for splitting library URLs."""

    def test_splits_library_and_path(self):
        assert parse_library_url("https://chem.libretexts.org/Bookshelves/Intro") == (
            "chem",
            "Bookshelves/Intro",
        )

    def test_keeps_encoded_path(self):
        url = "https://bio.libretexts.org/Courses/X/2.03%3ASome_Title"
        assert parse_library_url(url) == ("bio", "Courses/X/2.03%3ASome_Title")

    def test_accepts_plain_http(self):
        assert parse_library_url("http://phys.libretexts.org/A") == ("phys", "A")

    def test_rejects_other_domains(self):
        assert parse_library_url("https://chem.example.org/Bookshelves") is None

    def test_rejects_missing_path(self):
        assert parse_library_url("https://chem.libretexts.org/") is None

    def test_rejects_non_strings(self):
        assert parse_library_url(None) is None
        assert parse_library_url("") is None

    def test_custom_base_domain(self):
        assert parse_library_url("https://dev.example.edu/P", "example.edu") == ("dev", "P")


class TestParsePagePath:
    """Tests for recovering section numbering."""

    def test_numbered_section(self):
        hint = parse_page_path("Bookshelves/Chem/2.03%3ASome_Title")
        assert hint.success
        assert hint.num_prefix == "2.03"
        assert hint.title_extract == "Some Title"

    def test_back_matter_marker(self):
        hint = parse_page_path("Bookshelves/Chem/zz%3A_Back_Matter")
        assert hint.success
        assert hint.num_prefix == "zz"
        assert hint.title_extract == "Back Matter"

    def test_only_first_delimiter_splits(self):
        hint = parse_page_path("A/1%3A_Ratio%3A_Part")
        assert hint.num_prefix == "1"
        assert hint.title_extract == "Ratio%3A Part"

    def test_only_last_segment_counts(self):
        hint = parse_page_path("1%3A_Parent/Unnumbered_Page")
        assert not hint.success
        assert hint.num_prefix is None

    def test_prefix_without_digit(self):
        assert not parse_page_path("A/Intro%3A_Things").success

    def test_non_string(self):
        assert not parse_page_path(None).success


class TestComputePageSegment:
    """Tests for destination path segments."""

    def test_replaces_existing_number(self):
        assert compute_page_segment("1.1: Intro", "1.1") == "1.1:_Intro"

    def test_adds_number_to_bare_title(self):
        assert compute_page_segment("Introducción", "2") == "2:_Introducción"

    def test_translated_number_is_replaced(self):
        assert compute_page_segment("1.1 : Introducción", "1.1") == "1.1:_Introducción"

    def test_no_number(self):
        assert compute_page_segment("  Front Matter ") == "Front_Matter"

    def test_blank_number_is_ignored(self):
        assert compute_page_segment("A: B", " ") == "A:_B"


class TestAssemblePath:
    """Tests for joining path parts."""

    def test_joins_with_single_slashes(self):
        assert assemble_path(["Target/", "/Parent", "Child"]) == "Target/Parent/Child"

    def test_skips_empty_parts(self):
        assert assemble_path(["Target", "", None, "Child"]) == "Target/Child"

    def test_url_prefix(self):
        assert assemble_path(["https://es.libretexts.org/", "Texts/Quimica"]) == (
            "https://es.libretexts.org/Texts/Quimica"
        )


class TestEncodePagePath:
    """Tests for page references."""

    def test_double_encoding(self):
        encoded = encode_page_path("Bookshelves/2.03%3ATitle")
        assert "/" not in encoded
        assert unquote(unquote(encoded)) == "Bookshelves/2.03%3ATitle"
        assert encoded.startswith("Bookshelves%252F")
