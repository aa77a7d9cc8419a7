"""Tip pool allocation.

Splits a day's tip total first across roles and then across the individual
shifts inside each role, following a distribution rule document::

    {
        "default": {"method": "hours_weighted", "multiplier": 1},
        "roles": {
            "server": {"method": "percentage", "percentage": 70},
            "chef": {"method": "percentage", "percentage": 30,
                     "individualMethod": "equal"},
        },
    }

Role methods:
    percentage      total * percentage / 100
    hours_weighted  total * role_hours / total_hours * multiplier
    equal           total / number_of_roles * multiplier
    (other/missing) total * role_hours / total_hours

Individual methods: ``equal`` or ``hours_based`` (default).

Everything here is pure Decimal arithmetic with no rounding; amounts are
rounded to cents only when they are persisted. Role allocations are not
normalized, so a rule whose percentages do not add up to 100 over- or
under-distributes the pool.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

METHOD_PERCENTAGE = "percentage"
METHOD_HOURS_WEIGHTED = "hours_weighted"
METHOD_EQUAL = "equal"

INDIVIDUAL_EQUAL = "equal"
INDIVIDUAL_HOURS_BASED = "hours_based"


class InvalidDistributionRule(ValueError):
    """Raised when a rule document cannot be applied to a role."""
    def __init__(self, role: str, problem: str):
        self.role = role
        self.problem = problem
        super().__init__(f"Invalid distribution rule for role '{role}': {problem}")


def to_decimal(value: Any) -> Decimal:
    """Convert ints, floats and numeric strings to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"Not a number: {value!r}")
    result = Decimal(str(value))
    if not result.is_finite():
        raise InvalidOperation(f"Not a finite number: {value!r}")
    return result


@dataclass(frozen=True)
class ShiftHours:
    """A completed shift as the allocator sees it."""
    shift_id: int
    user_id: int
    role: str
    hours_worked: Decimal


@dataclass(frozen=True)
class RolePolicy:
    """Allocation policy for one role."""
    method: Optional[str] = METHOD_EQUAL
    percentage: Optional[Decimal] = None
    multiplier: Decimal = ONE
    individual_method: str = INDIVIDUAL_HOURS_BASED

    @classmethod
    def from_document(cls, role: str, raw: Mapping[str, Any]) -> "RolePolicy":
        """Build a policy from a stored rule fragment, validating numeric fields."""
        if not isinstance(raw, Mapping):
            raise InvalidDistributionRule(role, "policy must be an object")

        method = raw.get("method")
        if method is not None and not isinstance(method, str):
            raise InvalidDistributionRule(role, "method must be a string")

        multiplier = raw.get("multiplier")
        try:
            multiplier = ONE if multiplier is None else to_decimal(multiplier)
        except (InvalidOperation, ValueError):
            raise InvalidDistributionRule(role, f"multiplier is not a number: {raw.get('multiplier')!r}")
        if multiplier < ZERO:
            raise InvalidDistributionRule(role, f"multiplier cannot be negative: {multiplier}")

        percentage = raw.get("percentage")
        if percentage is not None:
            try:
                percentage = to_decimal(percentage)
            except (InvalidOperation, ValueError):
                raise InvalidDistributionRule(role, f"percentage is not a number: {raw.get('percentage')!r}")
            if not ZERO <= percentage <= HUNDRED:
                raise InvalidDistributionRule(role, f"percentage must be between 0 and 100: {percentage}")
        if method == METHOD_PERCENTAGE and percentage is None:
            raise InvalidDistributionRule(role, "percentage method requires a percentage")

        individual = raw.get("individualMethod", raw.get("individual_method"))
        individual = INDIVIDUAL_EQUAL if individual == INDIVIDUAL_EQUAL else INDIVIDUAL_HOURS_BASED

        return cls(
            method=method,
            percentage=percentage,
            multiplier=multiplier,
            individual_method=individual,
        )


FALLBACK_POLICY = RolePolicy(method=METHOD_EQUAL, multiplier=ONE)


def resolve_policy(rules_doc: Optional[Mapping[str, Any]], role: str) -> RolePolicy:
    """Role-specific policy, else the document default, else an equal split.

    A policy that is present but empty (``{}``) still counts: it has no method,
    so the role gets its plain share of hours.
    """
    rules_doc = rules_doc or {}
    roles = rules_doc.get("roles") or {}
    raw = roles.get(role) if isinstance(roles, Mapping) and role in roles else None
    if raw is None:
        raw = rules_doc.get("default")
    if raw is None:
        return FALLBACK_POLICY
    return RolePolicy.from_document(role, raw)


@dataclass
class Payout:
    """One computed payout line (unrounded)."""
    user_id: int
    shift_id: int
    role: str
    hours_worked: Decimal
    base_amount: Decimal
    percentage_share: Decimal
    calculation_details: Dict[str, Any] = field(default_factory=dict)
    bonus_amount: Decimal = ZERO

    @property
    def total_amount(self) -> Decimal:
        return self.base_amount + self.bonus_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "shift_id": self.shift_id,
            "base_amount": self.base_amount,
            "bonus_amount": self.bonus_amount,
            "total_amount": self.total_amount,
            "hours_worked": self.hours_worked,
            "role": self.role,
            "percentage_share": self.percentage_share,
            "calculation_details": self.calculation_details,
        }


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    # A role (or a whole day) with no hours gets nothing rather than a division error
    if denominator == ZERO:
        return ZERO
    return numerator / denominator


def role_allocation(
    policy: RolePolicy,
    total_tips: Decimal,
    role_hours: Decimal,
    total_hours: Decimal,
    role_count: int,
) -> Decimal:
    """Dollar amount assigned to a whole role before the individual split."""
    if policy.method == METHOD_PERCENTAGE:
        return total_tips * (policy.percentage / HUNDRED)
    if policy.method == METHOD_HOURS_WEIGHTED:
        return total_tips * _ratio(role_hours, total_hours) * policy.multiplier
    if policy.method == METHOD_EQUAL:
        return (total_tips / Decimal(role_count)) * policy.multiplier
    return total_tips * _ratio(role_hours, total_hours)


def calculate_payouts(
    shifts: Iterable[ShiftHours],
    total_tips: Decimal,
    rules_doc: Optional[Mapping[str, Any]],
) -> List[Payout]:
    """Split ``total_tips`` across roles, then across each role's shifts."""
    total_tips = to_decimal(total_tips)

    shifts_by_role: Dict[str, List[ShiftHours]] = {}
    for shift in shifts:
        shifts_by_role.setdefault(shift.role, []).append(shift)

    hours_by_role = {
        role: sum((s.hours_worked for s in role_shifts), ZERO)
        for role, role_shifts in shifts_by_role.items()
    }
    total_hours = sum(hours_by_role.values(), ZERO)

    payouts: List[Payout] = []
    for role, role_shifts in shifts_by_role.items():
        policy = resolve_policy(rules_doc, role)
        role_hours = hours_by_role[role]
        allocation = role_allocation(
            policy, total_tips, role_hours, total_hours, len(shifts_by_role)
        )

        details = {
            "method": policy.method,
            "role_allocation": float(allocation),
            "role_hours": float(role_hours),
            "total_hours": float(total_hours),
            "multiplier": float(policy.multiplier),
            "individual_method": policy.individual_method,
        }
        if policy.percentage is not None:
            details["percentage"] = float(policy.percentage)

        for shift in role_shifts:
            if policy.individual_method == INDIVIDUAL_EQUAL:
                share = allocation / Decimal(len(role_shifts))
            else:
                share = allocation * _ratio(shift.hours_worked, role_hours)

            payouts.append(Payout(
                user_id=shift.user_id,
                shift_id=shift.shift_id,
                role=role,
                hours_worked=shift.hours_worked,
                base_amount=share,
                percentage_share=_ratio(share, total_tips) * HUNDRED if total_tips > ZERO else ZERO,
                calculation_details=dict(details),
            ))

    return payouts
