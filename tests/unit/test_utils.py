"""
Unit tests for string limit helpers.
"""

from resource_writer.utils import check_utf8, limit_utf8, truncate, utf8_len


def test_truncate():
    assert truncate(None, 3) is None
    assert truncate("abcdef", 3) == "abc"
    assert truncate("ab", 3) == "ab"


def test_limit_utf8_never_splits_characters():
    value = "aé€"  # 1 + 2 + 3 bytes
    assert utf8_len(value) == 6
    assert limit_utf8(value, 5) == "aé"
    assert limit_utf8(value, 2) == "a"
    assert limit_utf8(value, 6) == value
    assert check_utf8(value, 6) and not check_utf8(value, 5)
