"""Tests for deterministic masking of protected fields.

The expected strings are consumed by existing screens and exports, so
they are asserted character for character.
"""

import pytest

from opsdesk.services.masking import (
    PASSWORD_TOKEN,
    ProtectedField,
    mask_address,
    mask_date_of_birth,
    mask_email,
    mask_password,
    mask_phone,
    mask_value,
)


class TestMaskEmail:
    @pytest.mark.parametrize(
        ("address", "expected"),
        [
            ("rajesh.sharma@gmail.com", "r••••a@gmail.com"),
            ("ab@x.com", "••••@x.com"),
            ("abc@x.com", "a••••c@x.com"),
            ("a@x.com", "••••@x.com"),
        ],
    )
    def test_masks_local_part(self, address, expected):
        assert mask_email(address) == expected

    @pytest.mark.parametrize("address", ["no-at-sign", "@x.com", "user@"])
    def test_missing_part_returned_unchanged(self, address):
        assert mask_email(address) == address

    def test_empty(self):
        assert mask_email("") == ""
        assert mask_email(None) == ""


class TestMaskPhone:
    def test_keeps_first_and_last_two(self):
        assert mask_phone("9876543210") == "98••••10"

    def test_short_numbers_fully_masked(self):
        assert mask_phone("123") == "••••"
        assert mask_phone("1234") == "••••"

    def test_five_digits(self):
        assert mask_phone("12345") == "12••••45"

    def test_integer_input(self):
        assert mask_phone(9876543210) == "98••••10"


class TestMaskAddress:
    def test_full_address(self):
        masked = mask_address(
            {
                "street": "221B MG Road",
                "city": "Pune",
                "state": "Maharashtra",
                "pincode": "411001",
                "landmark": "Near City Mall",
            }
        )
        assert masked == {
            "street": "2•••••ad",
            "city": "Pune",
            "state": "Maharashtra",
            "pincode": "••••••",
            "landmark": "•••••",
        }

    def test_absent_parts_are_empty(self):
        masked = mask_address({"city": "Pune"})
        assert masked == {"street": "", "city": "Pune", "state": "", "pincode": "", "landmark": ""}

    def test_no_address(self):
        assert mask_address(None) == {}


class TestMaskDateOfBirth:
    def test_hides_day(self):
        assert mask_date_of_birth("15/06/1995") == "••/06/1995"

    def test_malformed_date(self):
        assert mask_date_of_birth("bad-date") == "••/••/••••"
        assert mask_date_of_birth("1995-06-15") == "••/••/••••"


class TestMaskPassword:
    def test_fixed_token_whatever_the_length(self):
        assert mask_password("x") == PASSWORD_TOKEN
        assert mask_password("a-very-long-passphrase-indeed") == PASSWORD_TOKEN
        assert len(PASSWORD_TOKEN) == 16


class TestMaskValue:
    def test_dispatch(self):
        assert mask_value(ProtectedField.EMAIL, "ab@x.com") == "••••@x.com"
        assert mask_value(ProtectedField.PHONE, "9876543210") == "98••••10"
        assert mask_value(ProtectedField.DATE_OF_BIRTH, "15/06/1995") == "••/06/1995"
        assert mask_value(ProtectedField.PASSWORD, "secret") == PASSWORD_TOKEN
