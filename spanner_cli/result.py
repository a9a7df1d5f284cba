"""Result containers returned by statement execution."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd


@dataclass
class Row:
    """One result row; every value is already rendered as a display string."""
    columns: List[str] = field(default_factory=list)


@dataclass
class Stats:
    """Execution statistics.

    ``elapsed_time`` (seconds) is excluded from equality so that results can be
    compared exactly while ignoring non-deterministic timing.
    """
    affected_rows: int = 0
    elapsed_time: float = field(default=0.0, compare=False)
    query_stats: Dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass
class Result:
    """Tabular outcome of one executed statement."""
    column_names: List[str] = field(default_factory=list)
    rows: List[Row] = field(default_factory=list)
    stats: Stats = field(default_factory=Stats)
    is_mutation: bool = False
    timestamp: Optional[datetime] = None
    predicates: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def to_dataframe(self) -> pd.DataFrame:
        """Convert rows to a DataFrame of display strings."""
        return pd.DataFrame([row.columns for row in self.rows], columns=self.column_names)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            'column_names': list(self.column_names),
            'rows': [dict(zip(self.column_names, row.columns)) for row in self.rows],
            'affected_rows': self.stats.affected_rows,
            'elapsed_time': self.stats.elapsed_time,
            'is_mutation': self.is_mutation,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
        }
