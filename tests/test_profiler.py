"""
Tests for dataset classification and strategy selection.
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from analyst.profiling import (
    DatasetCategory,
    classify_dataset,
    classify_preview,
    format_strategy_prompt,
)
from analyst.profiling.profiler import pick_category, scan_columns
from analyst.schemas import RichPreview


def keys(classification):
    return [s.key for s in classification.strategies]


def no_nulls(columns):
    return {c: 0 for c in columns}


class TestColumnScan:
    """Test dtype and name based column kinds."""

    def test_name_pattern_adds_datetime_kind(self):
        """A string column named like a date still counts as datetime."""
        ctx = scan_columns(["order_date", "qty"], {"order_date": "object", "qty": "int64"})
        assert ctx.datetime_cols == ["order_date"]
        assert ctx.categorical_count == 1
        assert ctx.numeric_count == 1

    def test_chinese_column_names(self):
        """Chinese naming conventions are recognised."""
        ctx = scan_columns(["日期", "金额", "经度", "纬度"], {"日期": "object", "金额": "float64"})
        assert "日期" in ctx.datetime_cols
        assert "金额" in ctx.amount_cols
        assert ctx.geo_cols == ["经度", "纬度"]

    def test_missing_dtype_is_treated_as_object(self):
        ctx = scan_columns(["x"], {})
        assert ctx.categorical_count == 1


class TestCategory:
    """Test category scoring and tie-break."""

    def test_date_revenue_region_is_time_series(self):
        """One datetime, one numeric and one categorical column classify as time series."""
        columns = ["date", "revenue", "region"]
        result = classify_dataset(
            columns,
            {"date": "datetime64[ns]", "revenue": "float64", "region": "object"},
            no_nulls(columns),
            [500, 3],
        )
        assert result.profile.category is DatasetCategory.TIME_SERIES
        assert "temporal" in result.profile.tags
        assert "time_series" in keys(result)
        assert "eda" in keys(result)
        assert "clustering" not in keys(result)

    def test_transactional_tag_independent_of_category(self):
        """Identifier + datetime + three amount columns always carry the transactional tag."""
        columns = ["order_id", "customer_id", "order_date", "amount", "price", "total"]
        dtypes = {
            "order_id": "object",
            "customer_id": "object",
            "order_date": "datetime64[ns]",
            "amount": "float64",
            "price": "float64",
            "total": "float64",
        }
        result = classify_dataset(columns, dtypes, no_nulls(columns), [1000, 6])
        assert result.profile.has_tag("transactional")
        assert result.profile.category is DatasetCategory.TRANSACTIONAL
        assert "transactional" in keys(result)

    def test_geospatial_needs_coordinate_pair(self):
        columns = ["latitude", "longitude", "city", "visitors"]
        dtypes = {"latitude": "float64", "longitude": "float64", "city": "object", "visitors": "int64"}
        result = classify_dataset(columns, dtypes, no_nulls(columns), [200, 4])
        assert result.profile.category is DatasetCategory.GEOSPATIAL
        assert "geospatial" in result.profile.tags
        assert "geospatial" in keys(result)

    def test_single_geo_column_is_not_geospatial(self):
        columns = ["city", "score"]
        result = classify_dataset(columns, {"city": "object", "score": "float64"}, no_nulls(columns), [10, 2])
        assert result.profile.category is not DatasetCategory.GEOSPATIAL
        assert "geospatial" not in result.profile.tags

    def test_text_heavy(self):
        columns = ["review_text", "title", "comment", "stars"]
        dtypes = {"review_text": "object", "title": "object", "comment": "object", "stars": "int64"}
        result = classify_dataset(columns, dtypes, no_nulls(columns), [300, 4])
        assert result.profile.category is DatasetCategory.TEXT_HEAVY
        assert result.profile.has_text
        assert "text" in keys(result)

    def test_high_dimensional(self):
        columns = [f"f{i}" for i in range(35)]
        dtypes = {c: "float64" for c in columns}
        result = classify_dataset(columns, dtypes, no_nulls(columns), [100, 35])
        assert result.profile.category is DatasetCategory.HIGH_DIMENSIONAL
        assert "high_dimensional" in result.profile.tags
        assert {"dimensionality_reduction", "clustering", "correlation"} <= set(keys(result))

    def test_all_categorical_is_general(self):
        columns = ["name", "colour"]
        result = classify_dataset(columns, {"name": "object", "colour": "object"}, no_nulls(columns), [5, 2])
        assert result.profile.category is DatasetCategory.GENERAL
        assert "categorical_heavy" in result.profile.tags

    def test_tie_goes_to_earlier_category(self):
        """An equal score never replaces a category evaluated earlier."""
        scores = {DatasetCategory.GEOSPATIAL: 4, DatasetCategory.TIME_SERIES: 4}
        assert pick_category(scores) is DatasetCategory.TIME_SERIES

    def test_no_scores_is_general(self):
        assert pick_category({}) is DatasetCategory.GENERAL


class TestStrategies:
    """Test strategy gates and ordering."""

    def test_zero_numeric_columns_unlock_no_numeric_strategies(self):
        columns = ["created_at", "status", "note"]
        dtypes = {"created_at": "datetime64[ns]", "status": "object", "note": "object"}
        result = classify_dataset(columns, dtypes, no_nulls(columns), [50, 3])
        assert result.profile.category not in (DatasetCategory.TIME_SERIES, DatasetCategory.HIGH_DIMENSIONAL)
        forbidden = {"time_series", "correlation", "clustering", "dimensionality_reduction"}
        assert forbidden.isdisjoint(keys(result))

    def test_sorted_by_descending_priority(self):
        columns = [f"m{i}" for i in range(12)] + ["group", "timestamp"]
        dtypes = {c: "float64" for c in columns}
        dtypes.update({"group": "object", "timestamp": "datetime64[ns]"})
        result = classify_dataset(columns, dtypes, no_nulls(columns), [100, 14])
        priorities = [s.priority for s in result.strategies]
        assert priorities == sorted(priorities, reverse=True)
        assert result.strategies[0].key == "eda"

    def test_missing_data_above_threshold(self):
        columns = ["a", "b"]
        dtypes = {"a": "float64", "b": "float64"}
        heavy = classify_dataset(columns, dtypes, {"a": 10, "b": 0}, [100, 2])
        light = classify_dataset(columns, dtypes, {"a": 1, "b": 0}, [1000, 2])
        assert heavy.profile.has_missing_data
        assert "missing_data" in keys(heavy)
        assert not light.profile.has_missing_data
        assert "missing_data" not in keys(light)

    def test_classification_is_deterministic(self):
        columns = ["date", "revenue", "cost", "units", "region"]
        dtypes = {
            "date": "datetime64[ns]",
            "revenue": "float64",
            "cost": "float64",
            "units": "int64",
            "region": "object",
        }
        first = classify_dataset(columns, dtypes, no_nulls(columns), [365, 5])
        second = classify_dataset(columns, dtypes, no_nulls(columns), [365, 5])
        assert first == second
        assert keys(first) == keys(second)

    def test_no_columns_is_not_applicable(self):
        assert classify_dataset([], {}, {}, [0, 0]) is None
        assert classify_preview(None) is None


class TestPrompt:
    """Test the rendered playbook."""

    def test_prompt_lists_strategies_in_order(self):
        preview = RichPreview(
            shape=[500, 3],
            columns=["date", "revenue", "region"],
            dtypes={"date": "datetime64[ns]", "revenue": "float64", "region": "object"},
            null_counts={"date": 0, "revenue": 0, "region": 0},
        )
        result = classify_preview(preview)
        text = format_strategy_prompt("sales.csv", result.profile, result.strategies)

        assert "[Dataset profile: sales.csv]" in text
        assert "Time series data" in text
        positions = [text.index(s.name) for s in result.strategies]
        assert positions == sorted(positions)
