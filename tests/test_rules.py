"""
Tests for the business rules engine.

Every rule is evaluated (no short-circuit), failure reasons are joined with
"; ", and the engine never raises for bad input.
"""

from decimal import Decimal

import pytest

from src.claims.config import RulesConfig
from src.claims.rules import ClaimHistory, InMemoryClaimHistory, RulesEngine

from conftest import NOW, days_ago, fixed_clock, make_claim


RULE_NAMES = [
    "ClaimAmountPositive",
    "ClaimAmountLimit",
    "PolicyCoverage",
    "PolicyIdValid",
    "ClaimantValid",
    "NoDuplicateClaims",
    "ClaimFrequency",
    "RequiredDocuments",
]


@pytest.fixture
def history():
    return InMemoryClaimHistory()


@pytest.fixture
def engine(history):
    return RulesEngine(RulesConfig(), history=history, clock=fixed_clock)


# ============================================================================
# Test: Report shape
# ============================================================================


class TestReport:

    def test_valid_claim_passes_every_rule(self, engine):
        report = engine.validate(make_claim())

        assert report.is_valid
        assert report.reason is None
        assert report.rules_checked == RULE_NAMES
        assert all(report.rule_results.values())

    def test_all_rules_evaluated_and_reasons_joined(self, engine):
        """A claim breaking several rules reports all of them."""
        claim = make_claim(total_amount=Decimal("0"), policy_id="", claimant_id="")
        report = engine.validate(claim)

        assert not report.is_valid
        assert report.rules_checked == RULE_NAMES
        assert report.failures == [
            "Claim amount must be greater than zero",
            "Policy ID is required",
            "Claimant ID is required",
        ]
        assert report.reason == "; ".join(report.failures)

    def test_validate_does_not_mutate_claim(self, engine):
        claim = make_claim()
        before = claim.model_dump()
        engine.validate(claim)
        assert claim.model_dump() == before


# ============================================================================
# Test: Amount rules
# ============================================================================


class TestAmountRules:

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("0.00")])
    def test_non_positive_amount_invalid(self, engine, amount):
        report = engine.validate(make_claim(total_amount=amount))
        assert not report.is_valid
        assert not report.rule_results["ClaimAmountPositive"]
        assert "amount" in report.reason.lower()

    def test_amount_over_global_limit(self, engine):
        report = engine.validate(make_claim(policy_id="XYZ-12345", total_amount=Decimal("200000")))
        assert not report.rule_results["ClaimAmountLimit"]
        assert "Claim amount $200,000.00 exceeds maximum limit of $50,000.00" in report.reason

    def test_amount_at_limit_passes(self, engine):
        report = engine.validate(make_claim(policy_id="XYZ-12345", total_amount=Decimal("50000.00")))
        assert report.rule_results["ClaimAmountLimit"]
        assert report.rule_results["PolicyCoverage"]

    def test_coverage_tier_ceiling(self, engine):
        """STD policies are covered up to 25k even though the global limit is 50k."""
        report = engine.validate(make_claim(policy_id="STD-1001", total_amount=Decimal("30000")))
        assert report.rule_results["ClaimAmountLimit"]
        assert not report.rule_results["PolicyCoverage"]
        assert "Insufficient coverage" in report.reason

    def test_coverage_prefix_case_insensitive(self, engine):
        assert engine.check_coverage("prem-555", Decimal("90000"))
        assert not engine.check_coverage("basic-555", Decimal("10000.01"))

    def test_unknown_prefix_falls_back_to_global_maximum(self):
        config = RulesConfig()
        assert config.coverage_ceiling("ZZZ-99999") == config.max_claim_amount


# ============================================================================
# Test: Identity rules
# ============================================================================


class TestIdentityRules:

    def test_short_policy_id(self, engine):
        report = engine.validate(make_claim(policy_id="AB1"))
        assert not report.rule_results["PolicyIdValid"]
        assert "Invalid policy ID format" in report.reason

    def test_bad_email_claimant(self, engine):
        report = engine.validate(make_claim(claimant_id="john@@example"))
        assert not report.rule_results["ClaimantValid"]
        assert "Invalid claimant email format" in report.reason

    def test_non_email_claimant_id_is_fine(self, engine):
        report = engine.validate(make_claim(claimant_id="CUST-000123"))
        assert report.rule_results["ClaimantValid"]


# ============================================================================
# Test: History rules
# ============================================================================


class TestHistoryRules:

    def test_duplicate_within_seven_days(self, engine, history):
        history.add(make_claim(submitted_at=days_ago(3)))
        report = engine.validate(make_claim())

        assert not report.is_valid
        assert not report.rule_results["NoDuplicateClaims"]
        assert "Duplicate claim detected" in report.reason

    def test_same_amount_outside_window_is_not_duplicate(self, engine, history):
        history.add(make_claim(submitted_at=days_ago(10)))
        report = engine.validate(make_claim())
        assert report.rule_results["NoDuplicateClaims"]

    def test_other_claimants_ignored(self, engine, history):
        history.add(make_claim(claimant_id="jane@example.com", submitted_at=days_ago(1)))
        assert engine.validate(make_claim()).is_valid

    def test_claim_is_not_its_own_duplicate(self, engine, history):
        claim = make_claim()
        history.add(claim)
        assert engine.validate(claim).is_valid

    def test_monthly_limit(self, engine, history):
        # March 15 clock: three earlier claims this month, spaced out
        for day, amount in ((1, "100"), (3, "200"), (5, "300")):
            history.add(make_claim(total_amount=Decimal(amount), submitted_at=NOW.replace(day=day)))
        report = engine.validate(make_claim())

        assert not report.rule_results["ClaimFrequency"]
        assert "Maximum claims per month (3) exceeded" in report.reason

    def test_claims_last_month_do_not_count(self, engine, history):
        for day, amount in ((1, "100"), (10, "200"), (20, "300")):
            history.add(make_claim(total_amount=Decimal(amount), submitted_at=NOW.replace(month=2, day=day)))
        assert engine.validate(make_claim()).rule_results["ClaimFrequency"]

    def test_minimum_days_between_claims(self, engine, history):
        history.add(make_claim(total_amount=Decimal("120"), submitted_at=days_ago(2)))
        report = engine.validate(make_claim())

        assert not report.rule_results["ClaimFrequency"]
        assert "Minimum 7 days required between claims" in report.reason

    def test_history_failure_becomes_rule_failure(self):
        """A broken history lookup fails the rules that need it, not the call."""

        class BrokenHistory(ClaimHistory):
            def claims_for_claimant(self, claimant_id):
                raise RuntimeError("database locked")

        engine = RulesEngine(history=BrokenHistory(), clock=fixed_clock)
        report = engine.validate(make_claim())

        assert not report.is_valid
        assert not report.rule_results["NoDuplicateClaims"]
        assert not report.rule_results["ClaimFrequency"]
        assert "database locked" in report.reason


# ============================================================================
# Test: Document rules
# ============================================================================


class TestDocumentRules:

    def test_large_claim_without_documents(self, engine):
        report = engine.validate(make_claim(documents=[]))
        assert not report.is_valid
        assert not report.rule_results["RequiredDocuments"]
        assert "Supporting documents required for claims over $1,000.00" in report.reason

    def test_small_claim_without_documents(self, engine):
        report = engine.validate(make_claim(total_amount=Decimal("250"), documents=[]))
        assert report.is_valid
