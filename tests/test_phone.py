"""Phone normalisation tests."""

import pytest

from servicedesk.utils.phone import normalize_phone


@pytest.mark.parametrize("raw,expected", [
    ("0551234567", "+966551234567"),
    ("055 123 4567", "+966551234567"),
    ("966551234567", "+966551234567"),
    ("+966 55-123-4567", "+966551234567"),
    ("551234567", "+966551234567"),
    (551234567, "+966551234567"),
    ("+14155550100", "+14155550100"),
    ("12345", "12345"),
])
def test_normalize(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "  ", "---"])
def test_empty(raw):
    assert normalize_phone(raw) is None
