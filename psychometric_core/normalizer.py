"""Evidence normalizer: raw submission -> validated ``ResponseVector``.

Accepts either bare values or entries shaped like
``{"question_id": ..., "value": ..., "response_time_ms": ..., "timestamp": ...}``
(camelCase keys from browser clients are accepted as well).
"""
from __future__ import annotations

import math
from numbers import Real
from typing import Any, Mapping, Optional, Sequence

from .definitions import AssessmentDefinition, ItemSpec
from .errors import RangeError, ShapeError
from .types import Response, ResponseValue, ResponseVector

_ID_KEYS = ("question_id", "questionId", "item_id")
_RT_KEYS = ("response_time_ms", "responseTimeMs", "rt_ms")


def _first(entry: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for k in keys:
        if entry.get(k) is not None:
            return entry[k]
    return None


def _is_number(v: Any) -> bool:
    return isinstance(v, Real) and not isinstance(v, bool)


def _option_value(item: ItemSpec, idx: int, v: Any) -> str:
    if isinstance(v, str):
        if v in item.options:
            return v
        raise RangeError(f"{item.id}: {v!r} is not one of {list(item.options)}", index=idx, item_id=item.id)
    if _is_number(v) and float(v).is_integer() and 0 <= int(v) < len(item.options):
        return item.options[int(v)]
    raise RangeError(f"{item.id}: option must be an id or an index below {len(item.options)}, got {v!r}",
                     index=idx, item_id=item.id)


def _scaled_value(item: ItemSpec, idx: int, v: Any, integral: bool) -> ResponseValue:
    if not _is_number(v) or not math.isfinite(float(v)):
        raise RangeError(f"{item.id}: expected a number, got {v!r}", index=idx, item_id=item.id)
    if integral and not float(v).is_integer():
        raise RangeError(f"{item.id}: expected a whole scale point, got {v!r}", index=idx, item_id=item.id)
    if not item.scale_min <= float(v) <= item.scale_max:
        raise RangeError(f"{item.id}: {v!r} outside scale {item.scale_min:g}..{item.scale_max:g}",
                         index=idx, item_id=item.id)
    return int(v) if integral else float(v)


def coerce_value(item: ItemSpec, idx: int, v: Any) -> ResponseValue:
    """Check one answer against its item and return the canonical value."""
    if v is None:
        raise RangeError(f"{item.id}: missing answer", index=idx, item_id=item.id)
    if item.has_options:
        return _option_value(item, idx, v)
    if item.kind == "time_estimate":
        if not _is_number(v) or not math.isfinite(float(v)) or float(v) < 0:
            raise RangeError(f"{item.id}: time estimate must be a non-negative number, got {v!r}",
                             index=idx, item_id=item.id)
        return float(v)
    if item.kind == "indicator":
        return _scaled_value(item, idx, v, integral=False)
    return _scaled_value(item, idx, v, integral=True)


def _response_time(item: ItemSpec, idx: int, raw: Any) -> Optional[float]:
    if raw is None:
        return None
    if not _is_number(raw) or not math.isfinite(float(raw)) or float(raw) < 0:
        raise RangeError(f"{item.id}: response time must be a non-negative number of ms, got {raw!r}",
                         index=idx, item_id=item.id)
    return float(raw)


def normalize(definition: AssessmentDefinition, raw_responses: Sequence[Any]) -> ResponseVector:
    """Validate ``raw_responses`` against ``definition``.

    Raises ``ShapeError`` for a wrong count or a misaligned ``question_id`` and
    ``RangeError`` for any value outside its item's scale or option set.
    Partial submissions are rejected, never padded.
    """
    if isinstance(raw_responses, (str, bytes)) or not isinstance(raw_responses, Sequence):
        raise ShapeError(f"{definition.id}: responses must be an ordered list")
    expected = definition.expected_item_count
    if len(raw_responses) != expected:
        raise ShapeError(f"{definition.id}: expected exactly {expected} responses, got {len(raw_responses)}")

    out = []
    for idx, (item, entry) in enumerate(zip(definition.items, raw_responses)):
        rt = ts = None
        if isinstance(entry, Mapping):
            qid = _first(entry, _ID_KEYS)
            if qid is not None and str(qid) != item.id:
                raise ShapeError(f"position {idx} holds {qid!r}, definition expects {item.id!r}",
                                 index=idx, item_id=str(qid))
            if "value" not in entry:
                raise ShapeError(f"position {idx} ({item.id}) has no 'value'", index=idx, item_id=item.id)
            value = coerce_value(item, idx, entry["value"])
            rt = _response_time(item, idx, _first(entry, _RT_KEYS))
            ts = entry.get("timestamp")
            if ts is not None and not _is_number(ts):
                raise RangeError(f"{item.id}: timestamp must be numeric", index=idx, item_id=item.id)
        else:
            value = coerce_value(item, idx, entry)
        out.append(Response(item.id, value, rt, None if ts is None else float(ts)))
    return ResponseVector(definition.id, tuple(out))
