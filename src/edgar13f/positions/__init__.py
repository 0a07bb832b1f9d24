"""edgar13f.positions: position-change derivation over holding snapshots."""

from edgar13f.positions.diff import (
    PositionSnapshot,
    aggregate_positions,
    classify,
    derive_position_changes,
    diff_positions,
    percent_change,
)

__all__ = [
    "PositionSnapshot",
    "aggregate_positions",
    "classify",
    "derive_position_changes",
    "diff_positions",
    "percent_change",
]
