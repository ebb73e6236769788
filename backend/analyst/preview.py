"""
Structural preview of tabular files.

The preview runs as a pandas script inside a sandbox (a fresh one for user
uploads, the still-running execution sandbox for generated files) and prints
one JSON object:

    {shape, columns, dtypes, head, describe, null_counts, sampled}

``shape`` reports the true row count when it is cheap to get (line count for
delimited text, workbook metadata for Excel, Parquet metadata); statistics are
computed over at most ``PREVIEW_SAMPLE_ROWS`` rows.
"""

import json
import logging
from typing import Any, Dict, Optional

from .config import PREVIEW_HEAD_ROWS, PREVIEW_SAMPLE_ROWS
from .files import PREVIEWABLE_EXTENSIONS

logger = logging.getLogger(__name__)

PREVIEW_MARKER = "# analyst:preview"

_DELIMITED_LOADER = '''
def _count_rows(path):
    for encoding in ("utf-8", "gbk"):
        try:
            with open(path, "r", encoding=encoding) as fh:
                return max(0, sum(1 for _ in fh) - 1)
        except (UnicodeDecodeError, OSError):
            continue
    return None

_total_rows = _count_rows(_path)
try:
    _df = pd.read_csv(_path, sep=_sep, nrows=_sample_rows)
except Exception:
    try:
        _df = pd.read_csv(_path, sep=_sep, nrows=_sample_rows, encoding="gbk")
    except Exception as _e:
        raise ValueError(f"Failed to parse file: {_e}")
_total_cols = None
'''

_EXCEL_LOADER = '''
try:
    from openpyxl import load_workbook
    _wb = load_workbook(_path, read_only=True)
    _ws = _wb.active
    _total_rows = max(0, _ws.max_row - 1)
    _total_cols = _ws.max_column
    _wb.close()
except Exception:
    _total_rows = None
    _total_cols = None

try:
    _df = pd.read_excel(_path, nrows=_sample_rows)
except Exception as _e:
    raise ValueError(f"Failed to parse Excel file: {_e}")
'''

_JSON_LOADER = '''
try:
    _df_full = pd.read_json(_path)
except Exception as _e:
    raise ValueError(f"Failed to parse JSON file: {_e}")
_total_rows = len(_df_full)
_total_cols = None
_df = _df_full.head(_sample_rows)
'''

_PARQUET_LOADER = '''
try:
    import pyarrow.parquet as pq
    _pf = pq.ParquetFile(_path)
    _total_rows = _pf.metadata.num_rows
    _total_cols = None
    _batch = next(_pf.iter_batches(batch_size=_sample_rows), None)
    _df = _batch.to_pandas() if _batch is not None else _pf.schema_arrow.empty_table().to_pandas()
except Exception as _e:
    raise ValueError(f"Failed to parse Parquet file: {_e}")
'''

_LOADERS = {
    "csv": _DELIMITED_LOADER,
    "tsv": _DELIMITED_LOADER,
    "txt": _DELIMITED_LOADER,
    "xlsx": _EXCEL_LOADER,
    "xls": _EXCEL_LOADER,
    "json": _JSON_LOADER,
    "parquet": _PARQUET_LOADER,
}

_SUMMARY = '''
if _df.empty:
    raise ValueError("File is empty or contains no data rows")

_rows = _total_rows if _total_rows is not None else _df.shape[0]
_cols = _total_cols if _total_cols is not None else _df.shape[1]
_result = {
    "shape": [int(_rows), int(_cols)],
    "columns": [str(c) for c in _df.columns],
    "dtypes": {str(c): str(d) for c, d in _df.dtypes.items()},
    "head": _df.head(_head_rows).to_string(index=True),
    "describe": _df.describe(include="all").to_string(),
    "null_counts": {str(k): int(v) for k, v in _df.isnull().sum().to_dict().items()},
    "sampled": bool(_rows > _sample_rows),
}
print(json.dumps(_result, ensure_ascii=False))
'''


def build_preview_code(
    path: str,
    ext: str,
    head_rows: int = PREVIEW_HEAD_ROWS,
    sample_rows: int = PREVIEW_SAMPLE_ROWS,
) -> str:
    """Build the in-sandbox preview script for a file at ``path``."""
    ext = ext.lower()
    if ext not in PREVIEWABLE_EXTENSIONS:
        raise ValueError(f"Unsupported file format: {ext}")
    sep = "\t" if ext == "tsv" else ","

    header = (
        f"{PREVIEW_MARKER}\n"
        "import json\n"
        "import pandas as pd\n"
        f"_path = {path!r}\n"
        f"_sep = {sep!r}\n"
        f"_head_rows = {int(head_rows)}\n"
        f"_sample_rows = {int(sample_rows)}\n"
    )
    return header + _LOADERS[ext] + _SUMMARY


def parse_preview_output(stdout: str, file_name: str) -> Dict[str, Any]:
    """
    Parse the preview script output into a preview dict with ``fileName``.

    Output that is not a JSON object is returned as an empty structural
    preview carrying the raw text in ``head``.
    """
    text = stdout.strip()
    parsed: Optional[Dict[str, Any]] = None
    if text:
        try:
            candidate = json.loads(text.splitlines()[-1])
            if isinstance(candidate, dict):
                parsed = candidate
        except json.JSONDecodeError:
            logger.debug(f"Preview output for {file_name} is not JSON")

    if parsed is None:
        return {
            "fileName": file_name,
            "shape": [0, 0],
            "columns": [],
            "dtypes": {},
            "head": text,
            "describe": "",
            "null_counts": {},
            "sampled": False,
        }
    return {"fileName": file_name, **parsed}
