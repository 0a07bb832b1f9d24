"""Period-over-period position changes derived from holding snapshots.

Everything here is a pure function of the holdings passed in, so the
derivation can be rerun at any time and written back with an upsert.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from edgar13f.core.models import ChangeType, Holding, PositionChange

logger = logging.getLogger(__name__)

PairKey = tuple[int, int]


@dataclass(frozen=True)
class PositionSnapshot:
    """Aggregated size of one (fund, security) position in one period.

    A fund can report the same CUSIP on several lines (different
    discretion or put/call), so shares and value are summed.
    """

    period: date
    shares: int
    value: int


def aggregate_positions(
    holdings: Iterable[Holding],
) -> dict[PairKey, dict[date, PositionSnapshot]]:
    """Group holdings by (fund_manager_id, security_id) and period end."""
    totals: dict[PairKey, dict[date, list[int]]] = defaultdict(
        lambda: defaultdict(lambda: [0, 0])
    )
    for h in holdings:
        bucket = totals[(h.fund_manager_id, h.security_id)][h.period_end_date]
        bucket[0] += h.shares_held
        bucket[1] += h.market_value

    return {
        key: {
            period: PositionSnapshot(period=period, shares=s, value=v)
            for period, (s, v) in periods.items()
        }
        for key, periods in totals.items()
    }


def percent_change(previous: int, current: int) -> float:
    """Relative change in percent; a zero base gives 100 if current > 0, else 0."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 4)


def classify(shares_change: int) -> ChangeType:
    if shares_change > 0:
        return ChangeType.INCREASED
    if shares_change < 0:
        return ChangeType.DECREASED
    return ChangeType.UNCHANGED


def diff_positions(
    fund_manager_id: int,
    security_id: int,
    previous: PositionSnapshot,
    current: PositionSnapshot,
) -> PositionChange:
    """Compare two snapshots of the same position.

    Percent change is measured on market value; the classification is
    based on the change in shares held.
    """
    shares_change = current.shares - previous.shares
    return PositionChange(
        fund_manager_id=fund_manager_id,
        security_id=security_id,
        from_period=previous.period,
        to_period=current.period,
        shares_change=shares_change,
        value_change=current.value - previous.value,
        percent_change=percent_change(previous.value, current.value),
        change_type=classify(shares_change),
    )


def derive_position_changes(
    holdings: Iterable[Holding],
    classify_entries_exits: bool = False,
) -> list[PositionChange]:
    """Derive one change per (fund, security) pair seen in >= 2 periods.

    Only the two most recent periods of each pair are compared. With
    ``classify_entries_exits`` each fund's two latest reported periods are
    also scanned: a security held only in the latest one is NEW, one held
    only in the prior one is SOLD. Those records replace any ordinary
    comparison with the same (fund, security, to_period) key.

    Output is sorted by (fund_manager_id, security_id, to_period).
    """
    positions = aggregate_positions(holdings)
    changes: dict[tuple[int, int, date], PositionChange] = {}

    for (fund_id, security_id), periods in positions.items():
        if len(periods) < 2:
            continue
        latest, prior = sorted(periods, reverse=True)[:2]
        change = diff_positions(fund_id, security_id, periods[prior], periods[latest])
        changes[(fund_id, security_id, change.to_period)] = change

    if classify_entries_exits:
        for change in _entries_and_exits(positions):
            changes[(change.fund_manager_id, change.security_id, change.to_period)] = change

    logger.debug(
        "Derived %d position changes from %d positions", len(changes), len(positions)
    )
    return [changes[key] for key in sorted(changes)]


def _entries_and_exits(
    positions: dict[PairKey, dict[date, PositionSnapshot]],
) -> list[PositionChange]:
    fund_periods: dict[int, set[date]] = defaultdict(set)
    for (fund_id, _), periods in positions.items():
        fund_periods[fund_id].update(periods)

    results: list[PositionChange] = []
    for (fund_id, security_id), periods in positions.items():
        reported = sorted(fund_periods[fund_id], reverse=True)
        if len(reported) < 2:
            continue
        latest, prior = reported[0], reported[1]
        current = periods.get(latest)
        previous = periods.get(prior)

        if current is not None and previous is None:
            results.append(
                PositionChange(
                    fund_manager_id=fund_id,
                    security_id=security_id,
                    from_period=prior,
                    to_period=latest,
                    shares_change=current.shares,
                    value_change=current.value,
                    percent_change=100.0,
                    change_type=ChangeType.NEW,
                )
            )
        elif previous is not None and current is None:
            results.append(
                PositionChange(
                    fund_manager_id=fund_id,
                    security_id=security_id,
                    from_period=prior,
                    to_period=latest,
                    shares_change=-previous.shares,
                    value_change=-previous.value,
                    percent_change=-100.0,
                    change_type=ChangeType.SOLD,
                )
            )
    return results
