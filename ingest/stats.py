from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from common.models import Contribution


@dataclass(frozen=True)
class ContributionStats:
    total_amount: Decimal
    count: int
    today_amount: Decimal
    today_count: int
    by_platform: dict[str, Decimal] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "totalAmount": str(self.total_amount),
            "count": self.count,
            "todayAmount": str(self.today_amount),
            "todayCount": self.today_count,
            "byPlatform": {k: str(v) for k, v in self.by_platform.items()},
        }


def collect_stats(contributions: Iterable[Contribution], *, today: Optional[date] = None) -> ContributionStats:
    """
    Totals for the dashboard. "Today" is by contribution date in UTC.
    """
    day = today or datetime.now(timezone.utc).date()
    total = Decimal("0")
    today_total = Decimal("0")
    count = 0
    today_count = 0
    by_platform: dict[str, Decimal] = {}

    for c in contributions:
        amount = Decimal(c.amount)
        total += amount
        count += 1
        by_platform[c.platform] = by_platform.get(c.platform, Decimal("0")) + amount
        if c.date.astimezone(timezone.utc).date() == day:
            today_total += amount
            today_count += 1

    return ContributionStats(
        total_amount=total,
        count=count,
        today_amount=today_total,
        today_count=today_count,
        by_platform=by_platform,
    )
