"""
Dataset classification from a structural preview.

Column kinds come from two signals:
- the pandas dtype reported by the preview (numeric / datetime / categorical)
- column-name patterns (datetime, geo, free text, identifier, monetary amount)

A name pattern can add a kind the dtype missed (a float ``latitude`` column
is still a geo column) but never removes a dtype-based one.

Category tie-break: candidates are scored in the fixed order of
``CATEGORY_EVALUATION_ORDER`` and a later category must score strictly
higher to replace an earlier one.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Tuple


class DatasetCategory(Enum):
    """High-level category of a dataset."""
    TIME_SERIES = "time_series"
    CROSS_SECTIONAL = "cross_sectional"
    TEXT_HEAVY = "text_heavy"
    GEOSPATIAL = "geospatial"
    TRANSACTIONAL = "transactional"
    HIGH_DIMENSIONAL = "high_dimensional"
    GENERAL = "general"


CATEGORY_EVALUATION_ORDER = (
    DatasetCategory.TIME_SERIES,
    DatasetCategory.TEXT_HEAVY,
    DatasetCategory.GEOSPATIAL,
    DatasetCategory.TRANSACTIONAL,
    DatasetCategory.HIGH_DIMENSIONAL,
    DatasetCategory.CROSS_SECTIONAL,
)

CATEGORY_LABELS = {
    DatasetCategory.TIME_SERIES: "Time series data",
    DatasetCategory.CROSS_SECTIONAL: "Cross-sectional / tabular data",
    DatasetCategory.TEXT_HEAVY: "Text-heavy data",
    DatasetCategory.GEOSPATIAL: "Geospatial data",
    DatasetCategory.TRANSACTIONAL: "Transactional / business data",
    DatasetCategory.HIGH_DIMENSIONAL: "High-dimensional data",
    DatasetCategory.GENERAL: "General dataset",
}

# Column-name heuristics (English and Chinese naming conventions)
DATETIME_PATTERN = re.compile(
    r"date|time|timestamp|datetime|日期|时间|created|updated|year|month|day", re.IGNORECASE
)
GEO_PATTERN = re.compile(
    r"latitude|longitude|lat|lng|lon|geo|coord|经度|纬度|address|城市|city|province|country|region",
    re.IGNORECASE,
)
TEXT_PATTERN = re.compile(
    r"description|desc|comment|review|text|body|content|abstract|summary|title|名称|描述|评论|简介",
    re.IGNORECASE,
)
ID_PATTERN = re.compile(r"^id$|_id$|^uid$|^key$|^index$|编号|序号|code", re.IGNORECASE)
AMOUNT_PATTERN = re.compile(
    r"amount|price|cost|revenue|salary|value|total|sum|金额|价格|费用|收入|销售", re.IGNORECASE
)

NUMERIC_DTYPES = frozenset({
    "int64", "int32", "int16", "int8",
    "float64", "float32", "float16",
    "uint8", "uint16", "uint32", "uint64",
    "Int64", "Int32", "Float64", "Float32",
})
DATETIME_DTYPES = frozenset({
    "datetime64[ns]", "datetime64", "datetime64[ns, UTC]",
    "datetime64[us]", "datetime64[ms]",
})
CATEGORICAL_DTYPES = frozenset({"object", "category", "string", "bool"})

MISSING_DATA_THRESHOLD = 0.01


@dataclass(frozen=True)
class DatasetProfile:
    """Structural profile derived from a rich preview. Never mutated."""
    category: DatasetCategory
    tags: Tuple[str, ...]
    summary: str
    numeric_ratio: float
    categorical_ratio: float
    has_datetime: bool
    has_text: bool
    has_missing_data: bool
    row_count: int
    col_count: int

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass
class ColumnContext:
    """Per-kind column lists gathered while classifying."""
    columns: List[str]
    numeric_count: int = 0
    categorical_count: int = 0
    datetime_cols: List[str] = field(default_factory=list)
    geo_cols: List[str] = field(default_factory=list)
    text_cols: List[str] = field(default_factory=list)
    id_cols: List[str] = field(default_factory=list)
    amount_cols: List[str] = field(default_factory=list)


def scan_columns(columns: Sequence[str], dtypes: Mapping[str, str]) -> ColumnContext:
    """Assign dtype-based and name-based kinds to every column."""
    ctx = ColumnContext(columns=list(columns))

    for col in ctx.columns:
        dtype = dtypes.get(col) or "object"

        if dtype in NUMERIC_DTYPES:
            ctx.numeric_count += 1
        elif dtype in DATETIME_DTYPES:
            ctx.datetime_cols.append(col)
        elif dtype in CATEGORICAL_DTYPES:
            ctx.categorical_count += 1

        if DATETIME_PATTERN.search(col) and col not in ctx.datetime_cols:
            ctx.datetime_cols.append(col)
        if GEO_PATTERN.search(col):
            ctx.geo_cols.append(col)
        if TEXT_PATTERN.search(col):
            ctx.text_cols.append(col)
        if ID_PATTERN.search(col):
            ctx.id_cols.append(col)
        if AMOUNT_PATTERN.search(col):
            ctx.amount_cols.append(col)

    return ctx


def _is_transactional(ctx: ColumnContext) -> bool:
    return bool(ctx.amount_cols) and bool(ctx.id_cols) and bool(ctx.datetime_cols)


def score_categories(
    ctx: ColumnContext, numeric_ratio: float, categorical_ratio: float
) -> Dict[DatasetCategory, float]:
    """Score every category whose structural precondition holds."""
    scores: Dict[DatasetCategory, float] = {}
    total_cols = len(ctx.columns)
    has_datetime = bool(ctx.datetime_cols)
    text_count = len(ctx.text_cols)

    # Measurements over time
    if has_datetime and numeric_ratio > 0.5:
        scores[DatasetCategory.TIME_SERIES] = 3 + numeric_ratio * 2
    elif has_datetime and ctx.numeric_count >= 1:
        scores[DatasetCategory.TIME_SERIES] = 2

    if text_count >= 3:
        scores[DatasetCategory.TEXT_HEAVY] = 5
    elif text_count == 2:
        scores[DatasetCategory.TEXT_HEAVY] = 3 + categorical_ratio
    elif text_count == 1 and categorical_ratio > 0.5:
        scores[DatasetCategory.TEXT_HEAVY] = 2

    # Needs a coordinate pair (or equivalent)
    if len(ctx.geo_cols) >= 2:
        scores[DatasetCategory.GEOSPATIAL] = 4

    if _is_transactional(ctx):
        scores[DatasetCategory.TRANSACTIONAL] = 4 + (1 if len(ctx.amount_cols) > 1 else 0)

    if total_cols > 30 and numeric_ratio > 0.7:
        scores[DatasetCategory.HIGH_DIMENSIONAL] = 5
    elif total_cols > 15 and numeric_ratio > 0.8:
        scores[DatasetCategory.HIGH_DIMENSIONAL] = 3

    # Baseline for mixed data that fits nothing else
    if numeric_ratio > 0.3:
        scores[DatasetCategory.CROSS_SECTIONAL] = 1

    return scores


def pick_category(scores: Mapping[DatasetCategory, float]) -> DatasetCategory:
    category = DatasetCategory.GENERAL
    best = 0.0
    for candidate in CATEGORY_EVALUATION_ORDER:
        score = scores.get(candidate)
        if score is not None and score > best:
            best = score
            category = candidate
    return category


def build_tags(
    ctx: ColumnContext,
    numeric_ratio: float,
    categorical_ratio: float,
    has_missing_data: bool,
) -> Tuple[str, ...]:
    total_cols = len(ctx.columns)
    tags = []
    if ctx.datetime_cols:
        tags.append("temporal")
    if len(ctx.geo_cols) >= 2:
        tags.append("geospatial")
    if ctx.text_cols:
        tags.append("text")
    if _is_transactional(ctx):
        tags.append("transactional")
    if total_cols > 15 and numeric_ratio > 0.7:
        tags.append("high_dimensional")
    if has_missing_data:
        tags.append("missing_data")
    if numeric_ratio > 0.6:
        tags.append("numeric_heavy")
    if categorical_ratio > 0.6:
        tags.append("categorical_heavy")
    return tuple(tags)


def build_summary(rows: int, ctx: ColumnContext) -> str:
    parts = [
        f"{rows} rows x {len(ctx.columns)} columns",
        f"{ctx.numeric_count} numeric, {ctx.categorical_count} categorical",
    ]
    if ctx.datetime_cols:
        parts.append(f"datetime: {', '.join(ctx.datetime_cols)}")
    if ctx.geo_cols:
        parts.append(f"geo: {', '.join(ctx.geo_cols)}")
    if ctx.text_cols:
        parts.append(f"text: {', '.join(ctx.text_cols)}")
    return " | ".join(parts)


def profile_dataset(
    columns: Sequence[str],
    dtypes: Mapping[str, str],
    null_counts: Mapping[str, int],
    shape: Sequence[int],
) -> Optional[Tuple[DatasetProfile, ColumnContext]]:
    """Build the profile and the column context, or None when there are no columns."""
    if not columns:
        return None

    ctx = scan_columns(columns, dtypes)
    total_cols = len(ctx.columns)
    total_rows = int(shape[0]) if shape else 0

    numeric_ratio = ctx.numeric_count / total_cols
    categorical_ratio = ctx.categorical_count / total_cols

    total_nulls = sum(int(v) for v in null_counts.values())
    cells = total_rows * total_cols
    has_missing_data = total_nulls > 0 and (cells == 0 or total_nulls / cells > MISSING_DATA_THRESHOLD)

    scores = score_categories(ctx, numeric_ratio, categorical_ratio)
    profile = DatasetProfile(
        category=pick_category(scores),
        tags=build_tags(ctx, numeric_ratio, categorical_ratio, has_missing_data),
        summary=build_summary(total_rows, ctx),
        numeric_ratio=numeric_ratio,
        categorical_ratio=categorical_ratio,
        has_datetime=bool(ctx.datetime_cols),
        has_text=bool(ctx.text_cols),
        has_missing_data=has_missing_data,
        row_count=total_rows,
        col_count=total_cols,
    )
    return profile, ctx

