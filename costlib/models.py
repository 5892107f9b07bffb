"""
Data models for the monthly cost report.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

from .constants import INACTIVE_SCOPE_STATES


@dataclass(frozen=True)
class YearRange:
    """Inclusive range of calendar years."""
    start_year: int
    end_year: int


@dataclass
class MonthPlan:
    """
    Effective, non-future months to report for a requested year range.

    months is empty when the whole range lies in the future (fully_future)
    or when nothing non-future remains.
    """
    year_range: YearRange
    months: List[str] = field(default_factory=list)
    effective_end_year: Optional[int] = None
    fully_future: bool = False
    label: str = ""


@dataclass
class MonthTotal:
    """Exact cost accumulator for one month."""
    cost: Decimal = Decimal("0")
    currencies: Set[str] = field(default_factory=set)

    def add(self, cost: Decimal, currency: Optional[str] = None) -> None:
        self.cost += cost
        if currency:
            self.currencies.add(currency)

    @property
    def currency(self) -> str:
        return ",".join(sorted(self.currencies))


@dataclass
class BillingScope:
    """A subscription that costs can be queried for."""
    id: str
    display_name: str = ""
    tenant_id: Optional[str] = None
    state: str = ""

    @property
    def is_active(self) -> bool:
        return self.state not in INACTIVE_SCOPE_STATES

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'display_name': self.display_name,
            'tenant_id': self.tenant_id,
            'state': self.state,
        }


@dataclass(frozen=True)
class Principal:
    """Signed-in identity. kind is "user", "service" or "object"."""
    id: str
    kind: str


@dataclass
class SavedSession:
    """One subscription context saved in the Azure CLI profile."""
    subscription_id: str
    subscription_name: str = ""
    tenant_id: Optional[str] = None
    user_name: str = ""
    user_type: str = ""
    is_default: bool = False


@dataclass
class ReportRow:
    """One output line of the report."""
    month: str
    cost: Decimal
    currency: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'cost': str(self.cost),
            'currency': self.currency,
        }


@dataclass
class CostReport:
    """Ordered monthly rows for one subscription and period."""
    rows: List[ReportRow]
    period_label: str = ""
    scope: Optional[BillingScope] = None

    @property
    def total_cost(self) -> Decimal:
        return sum((row.cost for row in self.rows), Decimal("0"))

    @property
    def no_activity(self) -> bool:
        return self.total_cost == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subscription': self.scope.to_dict() if self.scope else None,
            'period': self.period_label,
            'total_cost': str(self.total_cost),
            'rows': [row.to_dict() for row in self.rows],
        }
