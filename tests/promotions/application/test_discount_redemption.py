"""Application tests for discount lookups, validation and usage claims."""

import pytest
from ordering.pricing.discounts import validate_discount
from promotions.discount.code import DiscountCode, claim_usage, find_by_code
from shared.db import unit_of_work
from shared.exceptions import BelowMinimum, CodeInvalid, NotApplicable, UsageLimitReached

USER = "user-001"


class TestClaimUsage:
    def test_claims_stop_at_usage_limit(self, session_factory, make_discount):
        make_discount("TWICE", usage_limit=2)

        results = []
        for _ in range(3):
            with unit_of_work(session_factory) as session:
                results.append(claim_usage(session, find_by_code(session, "twice")))

        assert results == [True, True, False]
        with unit_of_work(session_factory) as session:
            assert find_by_code(session, "TWICE").usage_count == 2

    def test_unlimited_code(self, session_factory, make_discount):
        make_discount("ALWAYS", usage_limit=None)

        with unit_of_work(session_factory) as session:
            discount = find_by_code(session, "ALWAYS")
            assert all(claim_usage(session, discount) for _ in range(5))
            assert discount.usage_count == 5

    def test_find_unknown_code(self, session_factory):
        with unit_of_work(session_factory) as session:
            assert find_by_code(session, "NOPE") is None


class TestValidateDiscount:
    def test_valid_code_is_quoted_without_redeeming(self, session_factory, make_discount):
        make_discount("SAVE20", discount_value=20, max_discount=1000)

        discount, quote = validate_discount(USER, " save20 ", 10000, session_factory=session_factory)

        assert discount.code == "SAVE20"
        assert quote.amount == 1000
        with unit_of_work(session_factory) as session:
            assert session.get(DiscountCode, discount.id).usage_count == 0

    def test_unknown_code(self, session_factory):
        with pytest.raises(CodeInvalid):
            validate_discount(USER, "NOPE", 10000, session_factory=session_factory)

    def test_below_minimum(self, session_factory, make_discount):
        make_discount("BIG", min_order_value=5000)
        with pytest.raises(BelowMinimum):
            validate_discount(USER, "BIG", 4000, session_factory=session_factory)

    def test_product_restriction(self, session_factory, make_discount):
        make_discount("TEEONLY", applicable_product_ids=["tee-1"])

        with pytest.raises(NotApplicable):
            validate_discount(USER, "TEEONLY", 4000, product_ids=["tote-1"], session_factory=session_factory)

        _, quote = validate_discount(USER, "TEEONLY", 4000, product_ids=["tee-1"], session_factory=session_factory)
        assert quote.amount == 800

    def test_already_used_by_this_customer(self, session_factory, make_discount, place_order):
        make_discount("ONCE", user_limit=1)
        place_order(user_id=USER, discount_code="ONCE")

        with pytest.raises(UsageLimitReached):
            validate_discount(USER, "ONCE", 10000, session_factory=session_factory)
