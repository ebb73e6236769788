"""
Entry point combining the profiler and the strategy catalog.
"""

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Tuple

from .profiler import DatasetProfile, profile_dataset
from .strategies import AnalysisStrategy, select_strategies


@dataclass(frozen=True)
class DatasetClassification:
    profile: DatasetProfile
    strategies: Tuple[AnalysisStrategy, ...]  # highest priority first


def classify_dataset(
    columns: Sequence[str],
    dtypes: Mapping[str, str],
    null_counts: Mapping[str, int],
    shape: Sequence[int],
) -> Optional[DatasetClassification]:
    """
    Classify a dataset from its structural preview.

    Returns None ("not applicable") when the preview has no columns. Pure and
    deterministic: the same preview always yields an equal classification.
    """
    profiled = profile_dataset(columns, dtypes, null_counts, shape)
    if profiled is None:
        return None
    profile, ctx = profiled
    return DatasetClassification(profile=profile, strategies=tuple(select_strategies(profile, ctx)))


def classify_preview(rich_preview) -> Optional[DatasetClassification]:
    """Classify a ``RichPreview`` model (or None)."""
    if rich_preview is None:
        return None
    return classify_dataset(
        rich_preview.columns,
        rich_preview.dtypes,
        rich_preview.null_counts,
        rich_preview.shape,
    )
