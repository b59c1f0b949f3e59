from __future__ import annotations
import os, sys
from psychometric_core.audit_definitions import audit_definitions, print_report

# Minimum items per dimension before a window is reported as thin
MIN_ITEMS = int(os.getenv("TARGET_MIN_DIMENSION_ITEMS", 3))

def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    summary = audit_definitions(argv[0] if argv else os.getenv("DEFINITIONS_DIR") or None)
    print_report(summary)

    thin = []
    for aid, data in summary["coverage"].items():
        for dim, window in data["dimensions"].items():
            if window.startswith("["):
                lo, hi = window.strip("[)").split(",")
                n = int(hi) - int(lo)
            else:
                n = len(window.split(","))
            if n < MIN_ITEMS:
                thin.append(f"{aid}.{dim} has {n} items (<{MIN_ITEMS})")
    if thin:
        print("\nThin dimensions:")
        for msg in thin: print(f" - {msg}")
    return 2 if summary["errors"] else 0

if __name__ == "__main__":
    raise SystemExit(main())
