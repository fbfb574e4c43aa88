from __future__ import annotations

from typing import List, Optional

import pandas as pd

from .config import EngineConfig

YEAR_COLUMN = "year"
PERIOD_COLUMN = "period"


def is_movements_frame(frame: object) -> bool:
    return isinstance(frame, pd.DataFrame) and YEAR_COLUMN in frame.columns


def dataset_years(frame: Optional[pd.DataFrame]) -> List[int]:
    """Distinct years present in the frame, ascending."""
    if frame is None or frame.empty or YEAR_COLUMN not in frame.columns:
        return []
    years = pd.to_numeric(frame[YEAR_COLUMN], errors="coerce").dropna().unique()
    return sorted(int(y) for y in years)


def amount_column(frame: pd.DataFrame, config: Optional[EngineConfig] = None) -> str:
    config = config or EngineConfig()
    for column in config.amount_columns():
        if column in frame.columns:
            return column
    raise KeyError(
        f"Neither {' nor '.join(repr(c) for c in config.amount_columns())} column found in data. "
        f"Available columns: {', '.join(str(c) for c in frame.columns)}"
    )
