"""
E2B analysis template - code interpreter sandbox with the data stack preinstalled.

The preview script needs pandas, openpyxl and pyarrow.
"""

from e2b import Template

ANALYSIS_PACKAGES = [
    # Core
    "pandas",
    "numpy",
    # Visualization
    "matplotlib",
    "seaborn",
    # Modelling
    "scikit-learn",
    "statsmodels",
    # File formats
    "openpyxl",
    "xlrd",
    "pyarrow",
]

template = (
    Template()
    .from_template("code-interpreter-v1")
    .run_cmd("pip install --no-cache-dir " + " ".join(ANALYSIS_PACKAGES))
)
