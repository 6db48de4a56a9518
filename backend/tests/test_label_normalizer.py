"""Tests for PDF field label normalization."""

import pytest

from app.services.form_import.label_normalizer import normalize, normalize_many


class TestNormalize:
    """Display labels from raw PDF field names."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("NAMEOFPURCHASER", "Name of Purchaser"),
            ("buyerEmailAddress", "Buyer Email Address"),
            ("Line2_Date", "Line 2 Date"),
            ("hoa_name", "HOA Name"),
            ("SSN", "SSN"),
            ("closing_date", "Closing Date"),
            ("TELEPHONENUMBER", "Telephone Number"),
        ],
    )
    def test_known_names(self, raw, expected):
        assert normalize(raw) == expected

    def test_small_words_stay_lowercase_after_first_word(self):
        assert normalize("date_of_birth") == "Date of Birth"
        assert normalize("of_record") == "Of Record"

    def test_collapses_whitespace(self):
        assert normalize("  buyer   name ") == "Buyer Name"

    @pytest.mark.parametrize(
        "raw",
        ["NAMEOFPURCHASER", "buyerEmailAddress", "Line2_Date", "hoa_name", "Name of Purchaser"],
    )
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once

    @pytest.mark.parametrize("raw", [None, "", 42])
    def test_non_strings_returned_unchanged(self, raw):
        assert normalize(raw) == raw

    def test_normalize_many(self):
        assert normalize_many(["hoa_name", None]) == ["HOA Name", None]
