"""Tip pooling schemas - Pydantic models for rules, pools, shifts, disputes and order closing."""

from datetime import date, datetime
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============== Distribution Rule Schemas ==============

class RolePolicySchema(BaseModel):
    """How one role's share of the pool is computed and split."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    method: Optional[str] = Field(default=None, max_length=50)
    percentage: Optional[float] = Field(default=None, ge=0, le=100)
    multiplier: Optional[float] = Field(default=None, ge=0)
    individual_method: Optional[Literal["equal", "hours_based"]] = Field(
        default=None, alias="individualMethod"
    )

    @model_validator(mode="after")
    def percentage_required(self) -> "RolePolicySchema":
        if self.method == "percentage" and self.percentage is None:
            raise ValueError("percentage method requires a percentage")
        return self


class RulesDocument(BaseModel):
    """A distribution rule document: per-role policies plus a default."""
    model_config = ConfigDict(extra="allow")

    default: Optional[RolePolicySchema] = None
    roles: Dict[str, RolePolicySchema] = Field(default_factory=dict)


class DistributionRuleCreate(BaseModel):
    """Schema for creating a distribution rule."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    rules: RulesDocument

    def rules_document(self) -> dict:
        """The rule document as stored, with the camelCase keys clients send."""
        return self.rules.model_dump(by_alias=True, exclude_none=True)


# ============== Tip Pool Schemas ==============

class TipPoolCalculateRequest(BaseModel):
    """Schema for calculating a day's tip pool."""
    shift_date: date
    distribution_rule_id: int = Field(..., gt=0)


# ============== Shift Schemas ==============

class ShiftRecordCreate(BaseModel):
    """Schema for recording a completed shift."""
    start_time: datetime
    end_time: datetime
    role: str = Field(..., min_length=1, max_length=50)
    location: str = Field(default="main", min_length=1, max_length=100)


# ============== Dispute Schemas ==============

class DisputeCreate(BaseModel):
    """Schema for disputing a payout."""
    payout_id: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=2000)

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason cannot be blank")
        return v


class DisputeResolve(BaseModel):
    """Schema for moving a dispute along its workflow."""
    status: Literal["investigating", "resolved", "rejected"]
    resolution: Optional[str] = Field(default=None, max_length=2000)


# ============== Order Schemas ==============

class OrderClose(BaseModel):
    """Schema for closing an order with its tip."""
    tip_amount: float = 0
    tip_percentage: Optional[float] = Field(default=None, ge=0)
    payment_method: Optional[str] = Field(default=None, max_length=50)
    server_id: Optional[int] = Field(default=None, gt=0)
