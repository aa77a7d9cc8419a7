"""Tests for the pure allocation math: role allocation and individual splits."""

import pytest
from decimal import Decimal

from app.services.tip_allocation import (
    FALLBACK_POLICY,
    InvalidDistributionRule,
    RolePolicy,
    ShiftHours,
    calculate_payouts,
    resolve_policy,
    role_allocation,
)


def shift(shift_id, user_id, role, hours):
    return ShiftHours(shift_id=shift_id, user_id=user_id, role=role, hours_worked=Decimal(str(hours)))


def by_user(payouts):
    return {p.user_id: p for p in payouts}


# ============== Policy resolution ==============

class TestResolvePolicy:

    def test_role_policy_wins_over_default(self):
        doc = {
            "default": {"method": "hours_weighted"},
            "roles": {"server": {"method": "percentage", "percentage": 70}},
        }
        policy = resolve_policy(doc, "server")
        assert policy.method == "percentage"
        assert policy.percentage == Decimal("70")

    def test_default_used_for_unlisted_role(self):
        doc = {
            "default": {"method": "hours_weighted", "multiplier": 1},
            "roles": {"server": {"method": "percentage", "percentage": 70}},
        }
        assert resolve_policy(doc, "chef").method == "hours_weighted"

    def test_empty_role_policy_is_not_replaced_by_default(self):
        doc = {
            "default": {"method": "percentage", "percentage": 90},
            "roles": {"chef": {}},
        }
        policy = resolve_policy(doc, "chef")
        assert policy.method is None
        assert policy.multiplier == Decimal("1")

    def test_empty_default_is_used_as_is(self):
        assert resolve_policy({"default": {}}, "chef").method is None

    def test_no_default_falls_back_to_equal(self):
        assert resolve_policy({"roles": {}}, "chef") == FALLBACK_POLICY
        assert resolve_policy(None, "chef").method == "equal"

    def test_individual_method_accepts_both_spellings(self):
        assert RolePolicy.from_document("a", {"individualMethod": "equal"}).individual_method == "equal"
        assert RolePolicy.from_document("a", {"individual_method": "equal"}).individual_method == "equal"
        assert RolePolicy.from_document("a", {}).individual_method == "hours_based"
        assert RolePolicy.from_document("a", {"individualMethod": "weird"}).individual_method == "hours_based"

    def test_multiplier_defaults_to_one(self):
        assert RolePolicy.from_document("server", {"method": "equal"}).multiplier == Decimal("1")

    @pytest.mark.parametrize("raw", [
        {"method": "percentage"},
        {"method": "percentage", "percentage": "lots"},
        {"method": "hours_weighted", "multiplier": "double"},
        {"method": "hours_weighted", "multiplier": True},
        {"method": 5},
        {"method": "percentage", "percentage": 250},
        {"method": "percentage", "percentage": -50},
        {"method": "hours_weighted", "multiplier": -1},
        "percentage",
    ])
    def test_malformed_policy_rejected(self, raw):
        with pytest.raises(InvalidDistributionRule) as exc:
            RolePolicy.from_document("server", raw)
        assert exc.value.role == "server"


# ============== Role allocation ==============

class TestRoleAllocation:

    def test_percentage(self):
        policy = RolePolicy(method="percentage", percentage=Decimal("70"))
        assert role_allocation(policy, Decimal("200"), Decimal("5"), Decimal("10"), 2) == Decimal("140")

    def test_hours_weighted_with_multiplier(self):
        policy = RolePolicy(method="hours_weighted", multiplier=Decimal("1.5"))
        assert role_allocation(policy, Decimal("100"), Decimal("4"), Decimal("10"), 2) == Decimal("60")

    def test_equal_divides_by_role_count(self):
        policy = RolePolicy(method="equal")
        assert role_allocation(policy, Decimal("90"), Decimal("1"), Decimal("10"), 3) == Decimal("30")

    def test_unknown_method_uses_plain_hours_share(self):
        policy = RolePolicy(method="seniority", multiplier=Decimal("3"))
        assert role_allocation(policy, Decimal("100"), Decimal("2"), Decimal("8"), 2) == Decimal("25")

    def test_zero_total_hours_allocates_nothing(self):
        policy = RolePolicy(method="hours_weighted")
        assert role_allocation(policy, Decimal("100"), Decimal("0"), Decimal("0"), 1) == Decimal("0")


# ============== Payouts ==============

class TestCalculatePayouts:

    def test_hundred_dollar_scenario(self):
        shifts = [shift(1, 10, "server", 4), shift(2, 11, "server", 4), shift(3, 12, "chef", 2)]
        payouts = by_user(calculate_payouts(
            shifts, Decimal("100"), {"default": {"method": "hours_weighted", "multiplier": 1}}
        ))

        assert payouts[10].base_amount == Decimal("40")
        assert payouts[11].base_amount == Decimal("40")
        assert payouts[12].base_amount == Decimal("20")
        assert payouts[10].percentage_share == Decimal("40")
        assert payouts[12].percentage_share == Decimal("20")
        assert sum(p.total_amount for p in payouts.values()) == Decimal("100")

    def test_hours_based_split_is_proportional(self):
        shifts = [shift(1, 1, "server", 6), shift(2, 2, "server", 2)]
        payouts = by_user(calculate_payouts(
            shifts, Decimal("80"), {"roles": {"server": {"method": "percentage", "percentage": 100}}}
        ))
        assert payouts[1].base_amount == Decimal("60")
        assert payouts[2].base_amount == Decimal("20")

    def test_equal_split_ignores_hours(self):
        rules = {"roles": {"chef": {"method": "percentage", "percentage": 100, "individualMethod": "equal"}}}
        shifts = [shift(1, 1, "chef", 8), shift(2, 2, "chef", 1), shift(3, 3, "chef", 3)]
        payouts = calculate_payouts(shifts, Decimal("90"), rules)
        assert {p.base_amount for p in payouts} == {Decimal("30")}

    def test_percentage_rule_partition_conserves_total(self):
        rules = {"roles": {
            "server": {"method": "percentage", "percentage": 70},
            "chef": {"method": "percentage", "percentage": 30, "individualMethod": "equal"},
        }}
        shifts = [shift(1, 1, "server", 5), shift(2, 2, "server", 3), shift(3, 3, "chef", 7)]
        payouts = calculate_payouts(shifts, Decimal("123.45"), rules)
        assert sum(p.total_amount for p in payouts) == Decimal("123.45")

    def test_percentages_over_hundred_over_distribute(self):
        rules = {"roles": {
            "server": {"method": "percentage", "percentage": 80},
            "chef": {"method": "percentage", "percentage": 40},
        }}
        payouts = calculate_payouts([shift(1, 1, "server", 5), shift(2, 2, "chef", 5)], Decimal("100"), rules)
        assert sum(p.total_amount for p in payouts) == Decimal("120")

    def test_zero_hour_role_gets_nothing(self):
        shifts = [shift(1, 1, "server", 0), shift(2, 2, "chef", 0)]
        payouts = calculate_payouts(shifts, Decimal("50"), {"default": {"method": "hours_weighted"}})
        assert all(p.base_amount == Decimal("0") for p in payouts)

    def test_one_payout_per_shift_in_first_seen_role_order(self):
        shifts = [shift(1, 1, "chef", 2), shift(2, 2, "server", 4), shift(3, 1, "chef", 3)]
        payouts = calculate_payouts(shifts, Decimal("100"), {"default": {"method": "equal"}})
        assert [p.shift_id for p in payouts] == [1, 3, 2]
        assert [p.role for p in payouts] == ["chef", "chef", "server"]

    def test_calculation_details_describe_role(self):
        rules = {"roles": {"server": {"method": "percentage", "percentage": 70}}}
        payout = calculate_payouts([shift(1, 1, "server", 4)], Decimal("100"), rules)[0]
        details = payout.calculation_details
        assert details["method"] == "percentage"
        assert details["percentage"] == 70.0
        assert details["role_allocation"] == 70.0
        assert details["role_hours"] == 4.0
        assert details["total_hours"] == 4.0
        assert details["individual_method"] == "hours_based"

    def test_invalid_rule_raises_before_any_payout(self):
        rules = {"roles": {"chef": {"method": "percentage"}}}
        with pytest.raises(InvalidDistributionRule):
            calculate_payouts([shift(1, 1, "server", 4), shift(2, 2, "chef", 4)], Decimal("100"), rules)

    def test_empty_role_policy_gets_plain_hours_share(self):
        rules = {
            "default": {"method": "percentage", "percentage": 90},
            "roles": {"chef": {}},
        }
        payouts = by_user(calculate_payouts(
            [shift(1, 1, "server", 6), shift(2, 2, "chef", 2)], Decimal("100"), rules
        ))
        assert payouts[1].base_amount == Decimal("90")
        assert payouts[2].base_amount == Decimal("25")
        assert payouts[2].calculation_details["method"] is None

    def test_percentage_bounds_are_inclusive(self):
        assert RolePolicy.from_document("a", {"method": "percentage", "percentage": 0}).percentage == Decimal("0")
        assert RolePolicy.from_document("a", {"method": "percentage", "percentage": 100}).percentage == Decimal("100")

    def test_negative_percentage_rejected_before_any_payout(self):
        rules = {"roles": {"server": {"method": "percentage", "percentage": -50}}}
        with pytest.raises(InvalidDistributionRule):
            calculate_payouts([shift(1, 1, "server", 4)], Decimal("100"), rules)

    def test_bonus_defaults_to_zero(self):
        payout = calculate_payouts([shift(1, 1, "server", 4)], Decimal("10"), None)[0]
        assert payout.bonus_amount == Decimal("0")
        assert payout.to_dict()["total_amount"] == Decimal("10")
