"""Role-to-group policy.

Maps a local role onto Odoo permission groups, named by their external
identifier ("module.name"). Every user gets the base groups; the role adds
its own set on top. Unknown roles fall back to "user".

A policy can be loaded from JSON so operators can change group assignment
without a release:

    {
        "version": "2",
        "base_groups": ["base.group_user"],
        "role_groups": {"admin": ["base.group_system"], "user": []}
    }
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from core.provisioning.models import DEFAULT_ROLE


DEFAULT_BASE_GROUPS = [
    # Core
    "base.group_user",
    "base.group_partner_manager",
    # Accounting
    "account.group_account_invoice",
    "account.group_account_user",
    "account.group_account_readonly",
    # Sales
    "sales_team.group_sale_salesman",
    "sales_team.group_sale_salesman_all_leads",
    "sale.group_delivery_invoice_address",
    # HR
    "hr.group_hr_user",
    "hr_contract.group_hr_contract_user",
    "hr_payroll.group_hr_payroll_user",
    "hr_attendance.group_hr_attendance_user",
    "hr_expense.group_hr_expense_user",
    "hr_holidays.group_hr_holidays_user",
    # Operations
    "project.group_project_user",
    "purchase.group_purchase_user",
    "stock.group_stock_user",
    "fleet.group_fleet_user",
]

DEFAULT_ROLE_GROUPS = {
    "admin": [
        "base.group_system",
        "base.group_erp_manager",
        "account.group_account_manager",
        "sales_team.group_sale_manager",
        "hr.group_hr_manager",
        "hr_contract.group_hr_contract_manager",
        "hr_payroll.group_hr_payroll_manager",
        "project.group_project_manager",
        "purchase.group_purchase_manager",
        "stock.group_stock_manager",
    ],
    "accountant": [
        "account.group_account_manager",
        "account.group_account_user",
        "analytic.group_analytic_accounting",
    ],
    "manager": [
        "sales_team.group_sale_manager",
        "hr.group_hr_manager",
        "hr_contract.group_hr_contract_manager",
        "hr_payroll.group_hr_payroll_manager",
        "project.group_project_manager",
    ],
    "salesperson": [],
    "user": [],
}


@dataclass
class GroupPolicy:
    """Versioned role-to-group mapping."""
    version: str = "1"
    base_groups: List[str] = field(default_factory=lambda: list(DEFAULT_BASE_GROUPS))
    role_groups: Dict[str, List[str]] = field(
        default_factory=lambda: {role: list(groups) for role, groups in DEFAULT_ROLE_GROUPS.items()}
    )

    def normalize_role(self, role: Optional[str]) -> str:
        """Lower-case a role and map unknown roles to the default."""
        key = (role or DEFAULT_ROLE).strip().lower()
        if key not in self.role_groups:
            return DEFAULT_ROLE
        return key

    def groups_for_role(self, role: Optional[str]) -> List[str]:
        """Base groups followed by the role's groups, duplicates removed."""
        additional = self.role_groups.get(self.normalize_role(role), [])
        return list(dict.fromkeys(self.base_groups + additional))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "base_groups": list(self.base_groups),
            "role_groups": {role: list(groups) for role, groups in self.role_groups.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupPolicy":
        role_groups = {str(k).lower(): list(v) for k, v in data.get("role_groups", {}).items()}
        role_groups.setdefault(DEFAULT_ROLE, [])
        return cls(
            version=str(data.get("version", "1")),
            base_groups=list(data.get("base_groups", [])),
            role_groups=role_groups,
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "GroupPolicy":
        """Load a policy from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


DEFAULT_GROUP_POLICY = GroupPolicy()
