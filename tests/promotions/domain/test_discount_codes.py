"""Tests for discount code normalisation."""

from promotions.discount.code import DiscountCode, DiscountType, normalize_code


class TestDiscountCode:
    def test_normalize_code(self):
        assert normalize_code("  welcome10 ") == "WELCOME10"

    def test_code_is_stored_upper_case(self):
        assert DiscountCode(code=" save20", discount_value=20).code == "SAVE20"

    def test_discount_types(self):
        assert {t.value for t in DiscountType} == {"percentage", "fixed"}
