from __future__ import annotations
import os, sys, json, datetime, time, logging
from psychometric_core.definitions import default_registry
from psychometric_core.engine import score
from psychometric_core.errors import ScoringError, UnknownAssessmentError
def ask(prompt: str, options=None) -> str:
    if options:
        print(prompt)
        for i,opt in enumerate(options): print(f"  [{i}] {opt}")
        while True:
            v = input("Your choice (index): ").strip()
            if v.isdigit() and int(v) < len(options): return v
            print("Enter a number index.")
    else:
        return input(prompt + " ").strip()
def _number(raw: str):
    try: return int(raw)
    except ValueError: pass
    try: return float(raw)
    except ValueError: return raw
def _list(reg):
    print("Available assessments:")
    for aid in reg.ids(): print(f"  {aid}  ({reg.get(aid).title})")
def main(argv=None):
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    argv = sys.argv[1:] if argv is None else argv
    reg = default_registry()
    if not argv:
        _list(reg); return 1
    try: d = reg.get(argv[0])
    except UnknownAssessmentError:
        print(f"Unknown assessment: {argv[0]}"); _list(reg); return 1
    print(f"{d.title} v{d.version}: {d.expected_item_count} items")
    answers = []
    for it in d.items:
        text = it.text or it.id
        if it.kind == "time_estimate": qtxt = f"{text} (estimate)"
        elif it.options: qtxt = text
        else: qtxt = f"({it.scale_min:g}-{it.scale_max:g}) {text}"
        t0 = time.perf_counter(); v = ask(qtxt, it.options) if it.options else ask(qtxt); rt = time.perf_counter() - t0
        answers.append({"question_id": it.id, "value": int(v) if it.options else _number(v), "response_time_ms": rt * 1000.0})
    try:
        res = score(d, answers)
    except ScoringError as e:
        print(f"Could not score this submission: {e}"); return 2
    os.makedirs("reports", exist_ok=True)
    ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    path = os.path.join("reports", f"result_{d.id}_{ts}.json")
    with open(path, "w", encoding="utf-8") as f: json.dump(res.to_dict(), f, indent=2)
    print(f"Profile: {res.profile.label}  |  validity: {res.validity.reliability}")
    if res.validity.review_required: print("Flagged for human review: " + ", ".join(res.validity.flags))
    print(f"Done. Result saved to: {path}")
    return 0
if __name__ == "__main__": raise SystemExit(main())
