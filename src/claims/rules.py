"""
Business rules engine for policy compliance.

Evaluates every policy check against a claim snapshot (no short-circuit) so
that all failure reasons can be reported together:
- Amount positivity, ceiling and policy tier coverage
- Policy id and claimant id well-formedness
- Duplicate and frequency checks against the claimant's history
- Document sufficiency for larger claims

Validation failures are results, never exceptions.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field

from .config import DEFAULT_RULES_CONFIG, RulesConfig
from .schema import Claim, as_utc, utc_now

logger = logging.getLogger(__name__)

RuleOutcome = Tuple[bool, Optional[str]]


class ClaimHistory(ABC):
    """Read-only lookup of a claimant's past claims."""

    @abstractmethod
    def claims_for_claimant(self, claimant_id: str) -> List[Claim]:
        """Return every stored claim for a claimant (documents not required)."""
        pass


class InMemoryClaimHistory(ClaimHistory):
    """Claim history backed by a plain list."""

    def __init__(self, claims: Optional[List[Claim]] = None):
        self.claims = list(claims or [])

    def add(self, claim: Claim) -> None:
        self.claims.append(claim)

    def claims_for_claimant(self, claimant_id: str) -> List[Claim]:
        return [c for c in self.claims if c.claimant_id == claimant_id]


class ValidationReport(BaseModel):
    """Outcome of running all policy rules against a claim."""

    is_valid: bool = Field(description="True only if every rule passed")
    reason: Optional[str] = Field(None, description="Failure messages joined with '; '")
    rules_checked: List[str] = Field(default_factory=list, description="Rule names in evaluation order")
    rule_results: Dict[str, bool] = Field(default_factory=dict, description="Rule name -> passed")
    failures: List[str] = Field(default_factory=list, description="Individual failure messages")


class RulesEngine:
    """
    Deterministic policy checks over a claim snapshot.

    Usage:
        engine = RulesEngine(RulesConfig(), history=store)
        report = engine.validate(claim)
        if not report.is_valid:
            print(report.reason)
    """

    def __init__(
        self,
        config: Optional[RulesConfig] = None,
        history: Optional[ClaimHistory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or DEFAULT_RULES_CONFIG
        self.history = history or InMemoryClaimHistory()
        self.clock = clock or utc_now

        self._rules: List[Tuple[str, Callable[[Claim], RuleOutcome]]] = [
            ("ClaimAmountPositive", self._check_amount_positive),
            ("ClaimAmountLimit", self._check_amount_limit),
            ("PolicyCoverage", self._check_coverage),
            ("PolicyIdValid", self._check_policy_id),
            ("ClaimantValid", self._check_claimant_id),
            ("NoDuplicateClaims", self._check_duplicates),
            ("ClaimFrequency", self._check_frequency),
            ("RequiredDocuments", self._check_documents),
        ]

    def validate(self, claim: Claim) -> ValidationReport:
        """
        Run every rule against the claim.

        Args:
            claim: Fully loaded claim, including its documents. Not mutated.

        Returns:
            ValidationReport with per-rule results and the aggregated reason
        """
        rules_checked = []
        rule_results = {}
        failures = []

        for name, rule in self._rules:
            try:
                passed, message = rule(claim)
            except Exception as e:
                logger.exception(f"Rule {name} raised for claim {claim.claim_id}")
                passed, message = False, f"{name} check could not be completed: {e}"

            rules_checked.append(name)
            rule_results[name] = passed
            if not passed:
                failures.append(message or f"{name} check failed")

        is_valid = not failures
        reason = "; ".join(failures) if failures else None

        if is_valid:
            logger.debug(f"Claim {claim.claim_id} passed all {len(rules_checked)} rules")
        else:
            logger.info(f"Claim {claim.claim_id} failed {len(failures)} rule(s): {reason}")

        return ValidationReport(
            is_valid=is_valid,
            reason=reason,
            rules_checked=rules_checked,
            rule_results=rule_results,
            failures=failures,
        )

    def check_coverage(self, policy_id: str, amount) -> bool:
        """Whether the policy tier covers the amount."""
        return amount <= self.config.coverage_ceiling(policy_id)

    # =========================================================================
    # Amount rules
    # =========================================================================

    def _check_amount_positive(self, claim: Claim) -> RuleOutcome:
        if claim.total_amount <= 0:
            return False, "Claim amount must be greater than zero"
        return True, None

    def _check_amount_limit(self, claim: Claim) -> RuleOutcome:
        limit = self.config.max_claim_amount
        if claim.total_amount > limit:
            return False, f"Claim amount ${claim.total_amount:,.2f} exceeds maximum limit of ${limit:,.2f}"
        return True, None

    def _check_coverage(self, claim: Claim) -> RuleOutcome:
        if not self.check_coverage(claim.policy_id, claim.total_amount):
            ceiling = self.config.coverage_ceiling(claim.policy_id)
            return False, (
                f"Insufficient coverage for claim amount ${claim.total_amount:,.2f} "
                f"(policy limit ${ceiling:,.2f})"
            )
        return True, None

    # =========================================================================
    # Identity rules
    # =========================================================================

    def _check_policy_id(self, claim: Claim) -> RuleOutcome:
        policy_id = claim.policy_id or ""
        if not policy_id.strip():
            return False, "Policy ID is required"
        if len(policy_id.strip()) < self.config.min_policy_id_length:
            return False, "Invalid policy ID format"
        return True, None

    def _check_claimant_id(self, claim: Claim) -> RuleOutcome:
        claimant_id = claim.claimant_id or ""
        if not claimant_id.strip():
            return False, "Claimant ID is required"
        if "@" in claimant_id:
            try:
                validate_email(claimant_id, check_deliverability=False)
            except EmailNotValidError:
                return False, "Invalid claimant email format"
        return True, None

    # =========================================================================
    # History rules
    # =========================================================================

    def _other_claims(self, claim: Claim) -> List[Claim]:
        if not (claim.claimant_id or "").strip():
            return []
        return [
            c for c in self.history.claims_for_claimant(claim.claimant_id)
            if c.claim_id != claim.claim_id
        ]

    def _check_duplicates(self, claim: Claim) -> RuleOutcome:
        window_start = self.clock() - timedelta(days=self.config.duplicate_window_days)
        for other in self._other_claims(claim):
            if other.total_amount == claim.total_amount and as_utc(other.submitted_at) > window_start:
                return False, (
                    f"Duplicate claim detected: Same amount submitted within "
                    f"{self.config.duplicate_window_days} days"
                )
        return True, None

    def _check_frequency(self, claim: Claim) -> RuleOutcome:
        now = self.clock()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        others = self._other_claims(claim)

        claims_this_month = sum(1 for c in others if as_utc(c.submitted_at) >= month_start)
        if claims_this_month >= self.config.max_claims_per_month:
            return False, f"Maximum claims per month ({self.config.max_claims_per_month}) exceeded"

        submitted_at = as_utc(claim.submitted_at)
        prior = [c for c in others if as_utc(c.submitted_at) <= submitted_at]
        if prior:
            last = max(prior, key=lambda c: as_utc(c.submitted_at))
            days_since_last = (now - as_utc(last.submitted_at)).days
            if days_since_last < self.config.min_days_between_claims:
                return False, f"Minimum {self.config.min_days_between_claims} days required between claims"

        return True, None

    # =========================================================================
    # Document rules
    # =========================================================================

    def _check_documents(self, claim: Claim) -> RuleOutcome:
        threshold = self.config.document_required_threshold
        if claim.total_amount > threshold and not claim.documents:
            return False, f"Supporting documents required for claims over ${threshold:,.2f}"
        return True, None
