"""
Procurement Policy - the engine's explicit configuration

Thresholds, role lists and matching tolerances are passed in as one value
object. Nothing in the ledger reads configuration from globals, so tests and
tenants can run side by side with different policies.

Fun fact: Many public-sector "micro-purchase" rules let small buys skip
approval entirely. Auto-approval here is the same idea, with the added check
that the money is actually there.
"""

from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class ProcurementPolicy(BaseModel):
    """
    Procurement configuration parameters

    Defaults are conservative: auto-approval off, self-approval forbidden,
    over-budget overrides limited to admin and finance roles.
    """

    policy_version: str = Field(
        default="1.0",
        description="Policy version for tracking changes over time",
    )

    # Auto-approval
    auto_approval_enabled: bool = Field(
        default=False,
        description="Approve small purchase orders automatically on submit",
    )

    auto_approval_threshold: Decimal = Field(
        default=Decimal("500"),
        ge=Decimal("0"),
        description="Largest PO total eligible for auto-approval (inclusive)",
    )

    # Approval authority
    over_budget_override_roles: list[str] = Field(
        default=["ADMIN", "FINANCE"],
        description="Roles allowed to approve a PO that exceeds available budget",
    )

    forbid_self_approval: bool = Field(
        default=True,
        description="Reject manual approval by the PO's own requester",
    )

    require_receipt_for_completion: bool = Field(
        default=False,
        description="Require at least one linked receipt before APPROVED -> COMPLETED",
    )

    # Concurrency
    lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Bounded wait for a budget item or PO lock",
    )

    # Notifications
    threshold_warning_ratio: Decimal = Field(
        default=Decimal("0.9"),
        gt=Decimal("0"),
        le=Decimal("1"),
        description="Committed/budget ratio that triggers a threshold-approach notice",
    )

    # PO numbering
    po_number_prefix: str = Field(
        default="PO-",
        description="Prefix of generated PO numbers, e.g. PO-2025-001",
    )

    po_number_reset_yearly: bool = Field(
        default=True,
        description="Restart the PO sequence at 001 each calendar year",
    )

    # Receipt matching
    match_amount_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=Decimal("0"),
        description="Relative amount difference counted as an exact match",
    )

    match_amount_close_factor: int = Field(
        default=5,
        ge=1,
        description="Tolerance multiplier for a 'close' amount match",
    )

    match_date_window_days: int = Field(
        default=30,
        ge=0,
        description="Largest receipt/PO date gap that still scores",
    )

    match_max_suggestions: int = Field(
        default=5,
        ge=1,
        description="Maximum match suggestions returned",
    )

    # Pagination
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "description": "Configuration governing approvals, locking and matching"
        },
    }

    @model_validator(mode="after")
    def _page_sizes_consistent(self) -> "ProcurementPolicy":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        return self

    def can_override_budget(self, role: str) -> bool:
        """True if `role` may approve beyond available budget"""
        return role.upper() in {r.upper() for r in self.over_budget_override_roles}

    @classmethod
    def from_json_file(cls, path: str | Path) -> "ProcurementPolicy":
        """
        Load a policy from a JSON file

        Missing keys keep their defaults.

        Args:
            path: Path to a JSON object with policy fields

        Returns:
            Validated policy
        """
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


default_procurement_policy = ProcurementPolicy()
