"""
One-level hierarchy over object keys.

Backends with delimiter listing already split a prefix into sub-prefixes and
files; ``merge_delimited_listing`` only filters and orders that answer.
Flat-namespace backends return every key under the prefix, so
``collapse_flat_listing`` folds deeper keys into their immediate child folder.
"""

from collections.abc import Iterable

from .cloud_storage import ObjectEntry
from .file_utils import DELIMITER


def normalize_prefix(prefix: str | None) -> str:
    """``"a/b"`` -> ``"a/b/"``; the empty prefix stays empty."""
    if not prefix:
        return ""
    return prefix if prefix.endswith(DELIMITER) else f"{prefix}{DELIMITER}"


def collapse_flat_listing(prefix: str, entries: Iterable[ObjectEntry]) -> list[ObjectEntry]:
    """
    Synthesize immediate child folders from a flat listing.

    Args:
        prefix: Normalized query prefix (empty or ending with ``/``)
        entries: Every object whose key starts with ``prefix``

    Returns:
        Folders (deduplicated, in first-seen order) followed by files. Keys more
        than one level below ``prefix`` produce only their immediate child
        folder; explicit ``/``-terminated markers become folders.
    """
    folders: dict[str, ObjectEntry] = {}
    files: list[ObjectEntry] = []

    for entry in entries:
        key = entry.key
        if key == prefix or not key.startswith(prefix):
            continue

        remainder = key[len(prefix):]
        if DELIMITER not in remainder:
            files.append(entry)
            continue

        head = remainder.split(DELIMITER, 1)[0]
        folder_key = f"{prefix}{head}{DELIMITER}"
        is_marker = remainder == f"{head}{DELIMITER}"

        existing = folders.get(folder_key)
        if existing is None:
            folders[folder_key] = ObjectEntry.folder(
                folder_key, last_modified=entry.last_modified if is_marker else None
            )
        elif is_marker and existing.last_modified is None:
            existing.last_modified = entry.last_modified

    return [*folders.values(), *files]


def merge_delimited_listing(
    prefix: str,
    folders: Iterable[ObjectEntry],
    files: Iterable[ObjectEntry],
) -> list[ObjectEntry]:
    """
    Combine a native delimiter listing into one ordered level.

    Zero-length ``/``-terminated objects reported among the files are folder
    markers and are moved to the folder side. Anything keyed exactly at
    ``prefix`` is dropped.
    """
    merged: dict[str, ObjectEntry] = {}
    plain_files: list[ObjectEntry] = []

    for entry in folders:
        if entry.key != prefix:
            merged.setdefault(entry.key, entry)

    for entry in files:
        if entry.key == prefix:
            continue
        if entry.key.endswith(DELIMITER):
            marker = merged.get(entry.key)
            if marker is None:
                merged[entry.key] = ObjectEntry.folder(entry.key, last_modified=entry.last_modified)
            elif marker.last_modified is None:
                marker.last_modified = entry.last_modified
            continue
        plain_files.append(entry)

    return [*merged.values(), *plain_files]


__all__ = ["normalize_prefix", "collapse_flat_listing", "merge_delimited_listing"]
