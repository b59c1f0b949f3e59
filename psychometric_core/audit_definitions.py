from __future__ import annotations

import json
from collections import Counter
from pathlib import Path

from . import config
from .definitions import AssessmentDefinition, definition_paths, load_definition_file
from .errors import ConfigError


def summarize(defn: AssessmentDefinition) -> dict[str, object]:
    kinds = Counter(it.kind for it in defn.items)
    traps = Counter(it.trap_type for it in defn.items if it.is_trap)
    windows = {}
    for dim in defn.dimensions:
        idx = dim.indices
        contiguous = list(idx) == list(range(idx[0], idx[0] + len(idx)))
        windows[dim.id] = f"[{idx[0]}, {idx[-1] + 1})" if contiguous else ",".join(str(i) for i in idx)
    return {
        "title": defn.title,
        "version": defn.version,
        "items": len(defn.items),
        "kinds": dict(sorted(kinds.items())),
        "traps": dict(sorted(traps.items())),
        "contradiction_pairs": len(defn.validity.contradictions),
        "dimensions": windows,
        "scoring": defn.scoring.mode,
        "profile": defn.profile.mode,
        "validity": defn.validity.mode,
        "risks": [r.name for r in defn.risks],
    }


def audit_definitions(directory: str | Path | None = None) -> dict[str, object]:
    """Load each definition file on its own so one broken file does not hide the others."""
    coverage: dict[str, dict[str, object]] = {}
    errors: list[str] = []
    for path in definition_paths(directory):
        try:
            defn = load_definition_file(path)
        except ConfigError as e:
            errors.append(f"{path.name}: {e}")
            continue
        coverage[defn.id] = summarize(defn)
    return {"coverage": coverage, "errors": errors, "totals": {"definitions": len(coverage), "failed": len(errors)}}


def print_report(summary: dict[str, object]) -> None:
    coverage: dict[str, dict[str, object]] = summary["coverage"]  # type: ignore[assignment]
    print("=== Definition Coverage ===")
    for aid in sorted(coverage):
        data = coverage[aid]
        print(f"\nAssessment: {aid} (v{data['version']}, {data['items']} items)")
        print(f"  kinds: {data['kinds']}")
        if data["traps"]:
            print(f"  traps: {data['traps']}  pairs: {data['contradiction_pairs']}")
        for dim, window in data["dimensions"].items():  # type: ignore[union-attr]
            print(f"    {dim:<32} {window}")
        print(f"  scoring={data['scoring']} profile={data['profile']} validity={data['validity']}")

    errors: list[str] = summary["errors"]  # type: ignore[assignment]
    if errors:
        print("\nErrors:")
        for msg in errors:
            print(f" - {msg}")
    else:
        print("\nNo errors.")
    print("\nTotals:", summary["totals"])


def write_summary(summary: dict[str, object], path: Path = Path("/tmp/definition_audit.json")) -> str:
    text = json.dumps(summary, indent=2, sort_keys=True)
    path.write_text(text + "\n", encoding="utf-8")
    return text


def main(argv: list[str] | None = None) -> int:
    directory = argv[0] if argv else config.definitions_dir()
    summary = audit_definitions(directory)
    print_report(summary)
    write_summary(summary)
    return 2 if summary["errors"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
