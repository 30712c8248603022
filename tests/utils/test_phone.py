"""Tests for phone address normalization."""

import pytest

from chatbridge.domain.errors import InvalidAddressError
from chatbridge.utils.phone import digits_only, is_valid_phone, normalize_phone


class TestNormalizePhone:
    """Test canonical ``+digits`` normalization."""

    @pytest.mark.parametrize(
        "raw",
        [
            "+1 (809) 555-1234",
            "18095551234",
            "18095551234@c.us",
            "whatsapp:+18095551234",
            "  +1-809-555-1234  ",
        ],
    )
    def test_notations_converge(self, raw):
        assert normalize_phone(raw) == "+18095551234"

    def test_ten_digit_number_gets_country_code(self):
        assert normalize_phone("8095551234", "1") == "+18095551234"

    def test_ten_digit_number_without_country_code_is_kept(self):
        assert normalize_phone("8095551234", None) == "+8095551234"

    def test_explicit_plus_is_not_prefixed(self):
        assert normalize_phone("+4915123456", "1") == "+4915123456"

    @pytest.mark.parametrize("raw", [None, "", "   ", "123", "1" * 16, "0123456789"])
    def test_invalid_addresses_raise(self, raw):
        with pytest.raises(InvalidAddressError):
            normalize_phone(raw)

    def test_group_chat_is_rejected(self):
        with pytest.raises(InvalidAddressError):
            normalize_phone("120363043211234567@g.us")

    def test_is_valid_phone(self):
        assert is_valid_phone("+18095551234")
        assert not is_valid_phone("abc")

    def test_digits_only(self):
        assert digits_only("+18095551234") == "18095551234"
