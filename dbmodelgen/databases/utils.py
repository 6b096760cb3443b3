"""Row helpers shared by the dialect adapters."""

from typing import Any, Callable, Dict, Iterable, List, Mapping

from ..metadata import IndexMetadata


def group_rows_by(rows: Iterable[Mapping], key: Callable[[Mapping], Any]) -> Dict[Any, List[Mapping]]:
    """Group rows by key, keeping groups in first-seen order."""
    groups: Dict[Any, List[Mapping]] = {}
    for row in rows:
        groups.setdefault(key(row), []).append(row)
    return groups


def merge_indices(existing: List[IndexMetadata], new: Iterable[IndexMetadata]) -> List[IndexMetadata]:
    """Append index participations whose name is not already present."""
    merged = list(existing)
    seen = {idx.name for idx in merged}
    for idx in new:
        if idx.name in seen:
            continue
        seen.add(idx.name)
        merged.append(idx)
    return merged


def as_bool(value: Any) -> bool:
    """Catalog booleans arrive as bool, 0/1, 'YES'/'NO' or 't'/'f'."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().upper() in ("YES", "Y", "TRUE", "T", "1")
    return bool(value)


def none_if_blank(value: Any):
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value
