"""
Year-by-year cost aggregation into ordered report rows.
"""
import logging
import time
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from .constants import INTER_YEAR_PAUSE_SECONDS
from .models import BillingScope, CostReport, MonthTotal, ReportRow
from .periods import group_by_year, year_window

logger = logging.getLogger(__name__)


class AggregationDriver:
    """
    Runs one query per year and merges the results.

    Usage:
        driver = AggregationDriver(RetryingQueryClient(credential))
        report = driver.run(scope, plan.months, descending=True)
    """

    def __init__(
        self,
        client,
        sleep: Callable[[float], None] = time.sleep,
        pause_seconds: float = INTER_YEAR_PAUSE_SECONDS,
        tracker=None,
    ):
        self.client = client
        self.sleep = sleep
        self.pause_seconds = pause_seconds
        self.tracker = tracker

    def collect(self, scope: BillingScope, months: List[str]) -> Dict[str, MonthTotal]:
        """Merged {YYYY-MM: MonthTotal} for all years spanned by months."""
        merged: Dict[str, MonthTotal] = {}
        years = group_by_year(months)

        for i, year in enumerate(years):
            if i > 0:
                logger.debug(f"Pausing {self.pause_seconds}s before querying {year}")
                self.sleep(self.pause_seconds)

            if self.tracker:
                self.tracker.start_year(year)

            start, end = year_window(year, months)
            # Years are disjoint, so this is a plain union
            merged.update(self.client.query_year(scope.id, start, end))

            if self.tracker:
                self.tracker.complete_year()

        return merged

    def run(
        self,
        scope: BillingScope,
        months: List[str],
        descending: bool = False,
        period_label: str = "",
    ) -> CostReport:
        """
        One ReportRow per requested month, zero-filled where no cost was
        reported, ordered by month.
        """
        merged = self.collect(scope, months)

        rows = []
        for month in months:
            total: Optional[MonthTotal] = merged.get(month)
            if total is None:
                rows.append(ReportRow(month=month, cost=Decimal("0"), currency=""))
            else:
                rows.append(ReportRow(month=month, cost=total.cost, currency=total.currency))

        rows.sort(key=lambda r: r.month, reverse=descending)

        report = CostReport(rows=rows, period_label=period_label, scope=scope)
        logger.info(f"Aggregated {len(rows)} month(s), total {report.total_cost}")
        return report
