"""
Dataset Profiling Module.

Classifies an uploaded tabular file from its structural preview and builds a
ranked analysis playbook for the prompt.
"""

from .profiler import (
    CATEGORY_EVALUATION_ORDER,
    ColumnContext,
    DatasetCategory,
    DatasetProfile,
    profile_dataset,
)
from .strategies import (
    AnalysisStrategy,
    format_strategy_prompt,
    select_strategies,
)
from .classifier import (
    DatasetClassification,
    classify_dataset,
    classify_preview,
)

__all__ = [
    "CATEGORY_EVALUATION_ORDER",
    "ColumnContext",
    "DatasetCategory",
    "DatasetProfile",
    "profile_dataset",
    "AnalysisStrategy",
    "format_strategy_prompt",
    "select_strategies",
    "DatasetClassification",
    "classify_dataset",
    "classify_preview",
]
