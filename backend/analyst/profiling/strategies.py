"""
Analysis strategy catalog.

Every strategy template has its own gate over the profile and column context.
All unlocked strategies are returned (non-exclusive selection), sorted by
descending priority; ``sorted`` is stable so equal priorities keep catalog
order.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .profiler import CATEGORY_LABELS, ColumnContext, DatasetCategory, DatasetProfile


@dataclass(frozen=True)
class AnalysisStrategy:
    """A concrete analysis recommendation injected into the prompt."""
    key: str
    name: str
    reason: str
    steps: Tuple[str, ...]
    tools: Tuple[str, ...]
    priority: int  # 1-10, higher = more relevant


def _eda(profile: DatasetProfile, ctx: ColumnContext) -> Optional[AnalysisStrategy]:
    return AnalysisStrategy(
        key="eda",
        name="Basic exploratory analysis (EDA)",
        reason="First step for any dataset",
        steps=(
            "Inspect shape, dtypes and missing-value overview",
            "Histograms / box plots for numeric columns",
            "Frequency counts (value_counts) for categorical columns",
            "Key statistics: mean, median, std, skewness, kurtosis",
        ),
        tools=("pandas.describe()", "matplotlib/seaborn histplot", "df.info()"),
        priority=10,
    )


def _missing_data(profile, ctx):
    if not profile.has_missing_data:
        return None
    return AnalysisStrategy(
        key="missing_data",
        name="Missing data analysis and imputation",
        reason="The dataset has a significant share of missing values",
        steps=(
            "Visualize the missingness pattern (missingno matrix / heatmap)",
            "Judge the missingness mechanism (MCAR / MAR / MNAR)",
            "Choose a treatment: drop, mean/median fill, interpolation or model-based imputation",
            "Compare distributions before and after treatment",
        ),
        tools=("missingno", "sklearn.impute.SimpleImputer", "df.interpolate()"),
        priority=9,
    )


def _time_series(profile, ctx):
    if ctx.numeric_count < 1:
        return None
    if profile.category is not DatasetCategory.TIME_SERIES and not profile.has_datetime:
        return None
    first = ctx.datetime_cols[0] if ctx.datetime_cols else "the datetime column"
    return AnalysisStrategy(
        key="time_series",
        name="Time series analysis",
        reason=f"Datetime columns detected: {', '.join(ctx.datetime_cols)}",
        steps=(
            f"Convert {first} with pd.to_datetime and set it as the index",
            "Plot the trend over time (line plot)",
            "Aggregate by day / week / month",
            "Smooth the trend with a rolling mean",
            "Seasonal decomposition: trend + seasonality + residual",
            "For forecasting consider ARIMA or exponential smoothing",
        ),
        tools=(
            "pd.to_datetime()",
            "df.resample()",
            "statsmodels.tsa.seasonal.seasonal_decompose",
            "matplotlib line plot",
        ),
        priority=9,
    )


def _correlation(profile, ctx):
    if ctx.numeric_count < 3:
        return None
    return AnalysisStrategy(
        key="correlation",
        name="Correlation and regression analysis",
        reason=f"{ctx.numeric_count} numeric columns allow studying relationships between variables",
        steps=(
            "Compute the correlation matrix (pearson / spearman)",
            "Visualize it as a heatmap",
            "Identify strongly correlated pairs",
            "Explore pairwise relationships with a pairplot",
            "If there is a clear target, fit a regression model (linear / polynomial)",
        ),
        tools=(
            "df.corr()",
            "seaborn.heatmap",
            "seaborn.pairplot",
            "sklearn.linear_model.LinearRegression",
        ),
        priority=8,
    )


def _grouping(profile, ctx):
    if ctx.categorical_count < 1 or ctx.numeric_count < 1:
        return None
    return AnalysisStrategy(
        key="grouping",
        name="Group comparison analysis",
        reason="Both categorical and numeric variables are present",
        steps=(
            "groupby a categorical column and aggregate numeric columns (mean, median, sum)",
            "Grouped bar charts / box plots",
            "Cross-tabulate multiple categorical dimensions with pivot_table",
            "Test group differences with a t-test / ANOVA",
        ),
        tools=(
            "df.groupby().agg()",
            "pd.pivot_table()",
            "seaborn.boxplot / barplot",
            "scipy.stats.ttest_ind / f_oneway",
        ),
        priority=7,
    )


def _dimensionality_reduction(profile, ctx):
    if not profile.has_tag("high_dimensional") and ctx.numeric_count <= 10:
        return None
    return AnalysisStrategy(
        key="dimensionality_reduction",
        name="Dimensionality reduction and feature analysis",
        reason=f"Many numeric columns ({ctx.numeric_count}) suit dimensionality reduction",
        steps=(
            "Standardize the data (StandardScaler)",
            "Run PCA and inspect the explained variance ratio",
            "Scatter plot of the first 2-3 principal components",
            "Rank feature importance if there is a target variable",
            "For non-linear structure consider t-SNE",
        ),
        tools=(
            "sklearn.preprocessing.StandardScaler",
            "sklearn.decomposition.PCA",
            "sklearn.manifold.TSNE",
        ),
        priority=7,
    )


def _clustering(profile, ctx):
    if ctx.numeric_count < 3 or ctx.categorical_count > ctx.numeric_count:
        return None
    return AnalysisStrategy(
        key="clustering",
        name="Clustering analysis",
        reason="Several numeric features suit discovering natural groupings",
        steps=(
            "Standardize the data (StandardScaler)",
            "Pick the number of clusters with the elbow method",
            "Evaluate cluster quality with the silhouette score",
            "Cluster with K-Means or DBSCAN",
            "Visualize clusters in 2D after dimensionality reduction",
            "Compare feature profiles across clusters",
        ),
        tools=(
            "sklearn.cluster.KMeans / DBSCAN",
            "sklearn.metrics.silhouette_score",
            "matplotlib scatter",
        ),
        priority=6,
    )


def _text(profile, ctx):
    if not profile.has_text and profile.category is not DatasetCategory.TEXT_HEAVY:
        return None
    return AnalysisStrategy(
        key="text",
        name="Text analysis",
        reason=f"Text columns detected: {', '.join(ctx.text_cols)}",
        steps=(
            "Text length distribution",
            "Word frequencies / word cloud",
            "Clean text (stop words, punctuation, case)",
            "For Chinese text, segment with jieba",
            "Extract TF-IDF features",
            "For classification use Naive Bayes / SVM",
            "Sentiment analysis where relevant",
        ),
        tools=(
            "jieba (Chinese segmentation)",
            "wordcloud",
            "sklearn.feature_extraction.text.TfidfVectorizer",
            "collections.Counter",
        ),
        priority=7,
    )


def _geospatial(profile, ctx):
    if not profile.has_tag("geospatial"):
        return None
    return AnalysisStrategy(
        key="geospatial",
        name="Geospatial analysis",
        reason=f"Geo columns detected: {', '.join(ctx.geo_cols)}",
        steps=(
            "Map scatter plot of the records",
            "Aggregate statistics by region",
            "Density heatmap",
            "For spatial clustering use DBSCAN on coordinates",
        ),
        tools=("folium", "matplotlib scatter (lat/lon)", "geopandas"),
        priority=7,
    )


def _transactional(profile, ctx):
    if not profile.has_tag("transactional"):
        return None
    return AnalysisStrategy(
        key="transactional",
        name="Business / transaction analysis",
        reason="Transactional signature detected (identifier + datetime + amount)",
        steps=(
            "Transaction volume trend by day / week / month",
            "Customer / product breakdown (top-N, Pareto analysis)",
            "RFM analysis (recency, frequency, monetary value)",
            "Period-over-period growth rates",
            "Anomalous transaction detection",
        ),
        tools=(
            "df.groupby().agg()",
            "df.resample()",
            "matplotlib trend + bar charts",
        ),
        priority=8,
    )


def _distribution(profile, ctx):
    if ctx.numeric_count < 2:
        return None
    return AnalysisStrategy(
        key="distribution",
        name="Distribution and outlier analysis",
        reason="Numeric columns need distribution and outlier checks",
        steps=(
            "Histogram + KDE for each numeric column",
            "QQ plot to check normality",
            "Detect outliers with IQR / Z-score",
            "Highlight outliers on box plots",
            "Decide whether a log transform or scaling is needed",
        ),
        tools=(
            "seaborn.histplot(kde=True)",
            "scipy.stats.probplot (QQ plot)",
            "numpy.percentile (IQR)",
        ),
        priority=5,
    )


STRATEGY_CATALOG: Tuple[Callable[[DatasetProfile, ColumnContext], Optional[AnalysisStrategy]], ...] = (
    _eda,
    _missing_data,
    _time_series,
    _correlation,
    _grouping,
    _dimensionality_reduction,
    _clustering,
    _text,
    _geospatial,
    _transactional,
    _distribution,
)


def select_strategies(profile: DatasetProfile, ctx: ColumnContext) -> List[AnalysisStrategy]:
    """Return every unlocked strategy, highest priority first."""
    unlocked = [s for s in (gate(profile, ctx) for gate in STRATEGY_CATALOG) if s is not None]
    return sorted(unlocked, key=lambda s: s.priority, reverse=True)


def format_strategy_prompt(
    file_name: str, profile: DatasetProfile, strategies: Sequence[AnalysisStrategy]
) -> str:
    """Render the profile and playbook as a prompt block."""
    lines = [
        f"\n[Dataset profile: {file_name}]",
        f"Type: {CATEGORY_LABELS[profile.category]} | {profile.summary}",
    ]
    if profile.tags:
        lines.append(f"Tags: {', '.join(profile.tags)}")

    lines.append("\n[Recommended analysis strategies] (best fit first)")
    for strategy in strategies:
        lines.append(f"\n> {strategy.name} (why: {strategy.reason})")
        lines.append("  Steps:")
        for i, step in enumerate(strategy.steps, 1):
            lines.append(f"    {i}. {step}")
        lines.append(f"  Suggested tools: {', '.join(strategy.tools)}")

    lines.append(
        "\nPick the strategies that fit the user's question. If the user gave no "
        "direction, start with EDA and recommend next steps based on the findings."
    )
    return "\n".join(lines)
