"""Helpers to export per-item scoring traces in JSON/CSV formats."""
from __future__ import annotations

from typing import Iterable, List, Dict, Any
import csv
import io

from .config import TRACE_FIELDS


def _normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key in TRACE_FIELDS:
        val = row.get(key)
        if key == "index":
            try:
                out[key] = int(val)
            except (TypeError, ValueError):
                out[key] = -1
        elif key in {"effective", "rt_ms"}:
            try:
                out[key] = None if val is None else float(val)
            except (TypeError, ValueError):
                out[key] = None
        else:
            out[key] = "" if val is None else str(val)
    return out


def to_json(rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a JSON-safe payload for trace export."""

    normalized: List[Dict[str, Any]] = [_normalize_row(r or {}) for r in rows]
    return {"rows": normalized}


def to_csv(rows: Iterable[Dict[str, Any]]) -> str:
    """Render trace rows as CSV with a fixed header; missing numbers stay blank."""

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=TRACE_FIELDS)
    writer.writeheader()
    for row in rows:
        norm = _normalize_row(row or {})
        writer.writerow({k: ("" if v is None else v) for k, v in norm.items()})
    return buf.getvalue()


__all__ = ["to_json", "to_csv"]
