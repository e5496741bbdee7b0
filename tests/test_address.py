import pytest

from idenawl.core.address import dedupe_sorted, is_valid_address, normalize_address
from idenawl.errors import InvalidAddress


def test_normalize_lowercases_and_strips():
    raw = "  0xABCDEF0123456789ABCDEF0123456789ABCDEF01 "
    assert normalize_address(raw) == "0xabcdef0123456789abcdef0123456789abcdef01"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "abcdef0123456789abcdef0123456789abcdef01",
        "0x1234",
        "0xzzcdef0123456789abcdef0123456789abcdef01",
        None,
        42,
    ],
)
def test_normalize_rejects(raw):
    with pytest.raises(InvalidAddress):
        normalize_address(raw)
    assert is_valid_address(raw) is False


def test_dedupe_sorted():
    a = "0x" + "b" * 40
    b = "0x" + "a" * 40
    assert dedupe_sorted([a, b.upper().replace("0X", "0x"), b]) == [b, a]
