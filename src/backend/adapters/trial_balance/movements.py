from __future__ import annotations

from numbers import Real
from pathlib import Path
from typing import Any, Iterable, List, Mapping

import pandas as pd

from common.report_engine.dataset import dataset_years

MOVEMENT_COLUMNS: tuple[str, ...] = (
    "year",
    "period",
    "code1",
    "name1",
    "code2",
    "name2",
    "code3",
    "name3",
    "statement_type",
    "account_code",
    "movement_amount",
)
_TEXT_COLUMNS = ("code1", "name1", "code2", "name2", "code3", "name3", "statement_type", "account_code")


class MovementsAdapterError(ValueError):
    pass


def _parse_amount(value: Any) -> float:
    if value is None:
        return 0.0
    if pd.api.types.is_bool(value):
        raise MovementsAdapterError(f"Invalid movement amount: {value!r}")
    if isinstance(value, Real):
        return 0.0 if pd.isna(value) else float(value)
    if isinstance(value, str):
        s = value.strip().replace(",", "")
        if not s:
            return 0.0
        try:
            return float(s)
        except ValueError as exc:
            raise MovementsAdapterError(f"Invalid movement amount: {value!r}") from exc
    raise MovementsAdapterError(f"Invalid movement amount: {value!r}")


def _text(value: Any) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def _normalize(frame: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in ("year", "period") if c not in frame.columns]
    if missing:
        raise MovementsAdapterError(f"Movements data is missing required column(s): {', '.join(missing)}")

    out = frame.copy()
    for column in ("year", "period"):
        numeric = pd.to_numeric(out[column], errors="coerce")
        if numeric.isna().any():
            raise MovementsAdapterError(f"Column '{column}' contains non-numeric values.")
        out[column] = numeric.astype("int64")

    bad_periods = out.loc[(out["period"] < 1) | (out["period"] > 12), "period"]
    if not bad_periods.empty:
        raise MovementsAdapterError(f"Period out of range 1-12: {sorted(set(bad_periods.tolist()))}")

    for column in _TEXT_COLUMNS:
        out[column] = out[column].map(_text) if column in out.columns else ""

    if "movement_amount" not in out.columns and "amount" in out.columns:
        out = out.rename(columns={"amount": "movement_amount"})
    if "movement_amount" in out.columns:
        out["movement_amount"] = out["movement_amount"].map(_parse_amount).astype("float64")
    else:
        out["movement_amount"] = 0.0

    extra = [c for c in out.columns if c not in MOVEMENT_COLUMNS]
    return out[list(MOVEMENT_COLUMNS) + extra].reset_index(drop=True)


def movements_frame_from_records(records: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """Build a normalized movements frame from row dicts (one per movement)."""
    rows: List[Mapping[str, Any]] = list(records)
    if not rows:
        empty = pd.DataFrame(columns=list(MOVEMENT_COLUMNS))
        return empty.astype({"year": "int64", "period": "int64", "movement_amount": "float64"})
    return _normalize(pd.DataFrame(rows))


def load_movements_csv(csv_path: str | Path) -> pd.DataFrame:
    path = Path(csv_path)
    if not path.exists():
        raise MovementsAdapterError(f"Movements CSV not found: {path}")
    # Codes keep their leading zeros.
    try:
        frame = pd.read_csv(path, dtype={c: str for c in _TEXT_COLUMNS}, keep_default_na=False)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as exc:
        raise MovementsAdapterError(f"Could not read movements CSV {path}: {exc}") from exc
    return _normalize(frame)


def available_years(frame: pd.DataFrame) -> List[int]:
    return dataset_years(frame)
