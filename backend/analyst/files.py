"""
File record helpers shared by the server and the client layer.

Session files form a name-keyed collection: merging a batch of incoming
records replaces any existing record with the same name (last write wins on
name, not on content) and appends the rest.
"""

from typing import Iterable, List, Protocol, TypeVar

# Extensions the preview procedure knows how to load with pandas
PREVIEWABLE_EXTENSIONS = frozenset({"csv", "tsv", "txt", "json", "xlsx", "xls", "parquet"})

MIME_TYPES = {
    "csv": "text/csv",
    "tsv": "text/tab-separated-values",
    "json": "application/json",
    "txt": "text/plain",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "xls": "application/vnd.ms-excel",
    "parquet": "application/octet-stream",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "html": "text/html",
    "md": "text/markdown",
}


class NamedFile(Protocol):
    name: str


F = TypeVar("F", bound=NamedFile)


def file_extension(name: str) -> str:
    """Return the lower-cased extension without the dot ('' if none)."""
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def is_previewable(name: str) -> bool:
    return file_extension(name) in PREVIEWABLE_EXTENSIONS


def guess_mime_type(name: str) -> str:
    return MIME_TYPES.get(file_extension(name), "application/octet-stream")


def merge_files_by_name(existing: Iterable[F], incoming: Iterable[F]) -> List[F]:
    """
    Merge two ordered file lists with by-name replacement.

    Existing records whose name appears in ``incoming`` are dropped; the
    survivors keep their order and the incoming records are appended in
    their own order. If ``incoming`` repeats a name, the later one wins.
    """
    latest = {}
    for record in incoming:
        latest.pop(record.name, None)
        latest[record.name] = record

    merged = [record for record in existing if record.name not in latest]
    merged.extend(latest.values())
    return merged


def is_safe_file_name(name: str) -> bool:
    """File names are staged directly under the sandbox mount directory."""
    if not name or len(name) > 255:
        return False
    if name in (".", ".."):
        return False
    return "/" not in name and "\\" not in name and "\x00" not in name
