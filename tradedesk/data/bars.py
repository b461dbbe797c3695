"""Bar loading — normalise provider OHLCV frames into ``Bar`` lists.

Data providers hand back frames with a ``time`` column (or a datetime
index) plus ``open``/``high``/``low``/``close`` and optionally ``volume``.
"""

import logging

import pandas as pd

from tradedesk.strategy.models import Bar

logger = logging.getLogger("tradedesk.data")

_PRICE_COLUMNS = ["open", "high", "low", "close"]


def clean_bars(df: pd.DataFrame, time_column: str = "time") -> pd.DataFrame:
    """Return a copy of *df* ready for analysis.

    1. Move a datetime index into *time_column* when the column is absent.
    2. Parse timestamps and ensure UTC.
    3. Drop rows with a missing price.
    4. Sort ascending and keep the last row for duplicated timestamps.
    """
    if df.empty:
        return df

    df = df.copy()

    if time_column not in df.columns:
        if not isinstance(df.index, pd.DatetimeIndex):
            raise ValueError(f"DataFrame has no '{time_column}' column or datetime index")
        df = df.rename_axis(time_column).reset_index()

    missing = [c for c in _PRICE_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"DataFrame is missing column(s): {', '.join(missing)}")

    df[time_column] = pd.to_datetime(df[time_column], utc=True)
    if "volume" not in df.columns:
        df["volume"] = 0.0

    before = len(df)
    df = df.dropna(subset=_PRICE_COLUMNS)
    df = (
        df.sort_values(time_column, kind="stable")
        .drop_duplicates(subset=time_column, keep="last")
        .reset_index(drop=True)
    )
    dropped = before - len(df)
    if dropped:
        logger.info("Dropped %d incomplete or duplicate bar(s)", dropped)

    return df


def bars_from_dataframe(df: pd.DataFrame, time_column: str = "time") -> list[Bar]:
    """Convert an OHLCV frame into an ascending, de-duplicated UTC ``Bar`` list."""
    df = clean_bars(df, time_column)
    if df.empty:
        return []

    return [
        Bar(
            timestamp=row[time_column].to_pydatetime(),
            open=float(row["open"]),
            high=float(row["high"]),
            low=float(row["low"]),
            close=float(row["close"]),
            volume=float(row["volume"]) if pd.notna(row["volume"]) else 0.0,
        )
        for _, row in df.iterrows()
    ]
