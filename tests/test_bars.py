"""Tests for bar loading from provider DataFrames."""

from datetime import timezone

import pandas as pd
import pytest

from tradedesk.data.bars import bars_from_dataframe, clean_bars


def _frame(times, closes, **extra) -> pd.DataFrame:
    data = {
        "time": times,
        "open": closes,
        "high": [c + 1 for c in closes],
        "low": [c - 1 for c in closes],
        "close": closes,
    }
    data.update(extra)
    return pd.DataFrame(data)


class TestBarsFromDataFrame:
    def test_sorted_ascending(self):
        df = _frame(
            ["2025-03-03T14:02:00Z", "2025-03-03T14:00:00Z", "2025-03-03T14:01:00Z"],
            [102.0, 100.0, 101.0],
        )
        bars = bars_from_dataframe(df)
        assert [b.close for b in bars] == [100.0, 101.0, 102.0]
        assert bars[0].timestamp < bars[1].timestamp < bars[2].timestamp

    def test_duplicates_keep_last(self):
        df = _frame(
            ["2025-03-03T14:00:00Z", "2025-03-03T14:01:00Z", "2025-03-03T14:01:00Z"],
            [100.0, 101.0, 101.5],
        )
        bars = bars_from_dataframe(df)
        assert len(bars) == 2
        assert bars[-1].close == 101.5

    def test_naive_times_become_utc(self):
        df = _frame(["2025-03-03 14:00:00", "2025-03-03 14:01:00"], [100.0, 101.0])
        bars = bars_from_dataframe(df)
        assert bars[0].timestamp.tzinfo is not None
        assert bars[0].timestamp.utcoffset() == timezone.utc.utcoffset(None)

    def test_volume_defaults_to_zero(self):
        bars = bars_from_dataframe(_frame(["2025-03-03T14:00:00Z"], [100.0]))
        assert bars[0].volume == 0.0

    def test_volume_carried(self):
        df = _frame(["2025-03-03T14:00:00Z"], [100.0], volume=[1500])
        assert bars_from_dataframe(df)[0].volume == 1500.0

    def test_rows_with_missing_prices_dropped(self):
        df = _frame(["2025-03-03T14:00:00Z", "2025-03-03T14:01:00Z"], [100.0, float("nan")])
        assert len(bars_from_dataframe(df)) == 1

    def test_datetime_index(self):
        df = _frame(["2025-03-03T14:00:00Z", "2025-03-03T14:01:00Z"], [100.0, 101.0])
        df = df.set_index(pd.to_datetime(df.pop("time"), utc=True))
        bars = bars_from_dataframe(df)
        assert [b.close for b in bars] == [100.0, 101.0]

    def test_empty_frame(self):
        assert bars_from_dataframe(pd.DataFrame()) == []

    def test_missing_columns(self):
        df = pd.DataFrame({"time": ["2025-03-03T14:00:00Z"], "close": [100.0]})
        with pytest.raises(ValueError, match="open"):
            bars_from_dataframe(df)

    def test_clean_bars_does_not_mutate_input(self):
        df = _frame(["2025-03-03T14:01:00Z", "2025-03-03T14:00:00Z"], [101.0, 100.0])
        clean_bars(df)
        assert list(df["close"]) == [101.0, 100.0]
