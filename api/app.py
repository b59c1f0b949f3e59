from __future__ import annotations
from fastapi import FastAPI, HTTPException, Body, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import logging, os, typing as t

# ---- Engine imports ----
from psychometric_core.definitions import DefinitionRegistry, AssessmentDefinition
from psychometric_core.engine import score
from psychometric_core.errors import ShapeError, RangeError, UnknownAssessmentError, ConfigError
from psychometric_core.config import load_config, definitions_dir
from psychometric_core.audit_export import to_json as trace_to_json, to_csv as trace_to_csv

log = logging.getLogger(__name__)

CFG = load_config()
REGISTRY = DefinitionRegistry.from_directory(definitions_dir(CFG))

app = FastAPI(title="Psychometric Scoring API")

@app.get("/")
def root():
    return {"status": "ok", "service": "psychometric-scoring-api"}

ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

# ---- Schemas ----
class ScoreReq(BaseModel):
    # entries are {question_id, value, response_time_ms?, timestamp?} or bare values
    responses: list[t.Any]
    trace: bool = False

# ---- Helpers ----
def _definition(assessment_id: str) -> AssessmentDefinition:
    try:
        return REGISTRY.get(assessment_id)
    except UnknownAssessmentError:
        raise HTTPException(404, f"assessment not found: {assessment_id}")


def _serialize_item(it) -> dict[str, t.Any]:
    out: dict[str, t.Any] = {"id": it.id, "kind": it.kind, "text": it.text}
    if it.options:
        out["options"] = list(it.options)
    elif it.kind != "time_estimate":
        out["scale"] = [it.scale_min, it.scale_max]
    return out


def _run(assessment_id: str, req: ScoreReq, trace: bool):
    d = _definition(assessment_id)
    try:
        return score(d, req.responses, trace=trace)
    except (ShapeError, RangeError) as e:
        kind = "shape" if isinstance(e, ShapeError) else "range"
        log.info("rejected %s submission: %s", assessment_id, e)
        raise HTTPException(422, {"error": kind, "message": str(e), "item_id": e.item_id, "index": e.index})

# ---- Health ----
@app.get("/health")
def health():
    return {
        "definitions": len(REGISTRY),
        "definitions_dir": definitions_dir(CFG) or "packaged",
        "include_trace": bool(CFG.get("INCLUDE_TRACE", False)),
    }

# ---- Definitions ----
@app.get("/assessments")
def list_assessments():
    out = []
    for aid in REGISTRY.ids():
        d = REGISTRY.get(aid)
        out.append({"id": d.id, "title": d.title, "version": d.version, "items": d.expected_item_count})
    return {"assessments": out}

@app.get("/assessments/{assessment_id}")
def get_assessment(assessment_id: str):
    d = _definition(assessment_id)
    return {
        "id": d.id,
        "title": d.title,
        "version": d.version,
        "dimensions": [{"id": dim.id, "label": dim.label} for dim in d.dimensions],
        "items": [_serialize_item(it) for it in d.items],
    }

# ---- Scoring ----
@app.post("/assessments/{assessment_id}/score")
def score_endpoint(assessment_id: str, req: ScoreReq = Body(...)):
    res = _run(assessment_id, req, trace=req.trace or bool(CFG.get("INCLUDE_TRACE", False)))
    return res.to_dict()

@app.post("/assessments/{assessment_id}/trace.json")
def trace_json(assessment_id: str, req: ScoreReq = Body(...)):
    res = _run(assessment_id, req, trace=True)
    return {"assessment_id": assessment_id, **trace_to_json(res.trace)}

@app.post("/assessments/{assessment_id}/trace.csv")
def trace_csv(assessment_id: str, req: ScoreReq = Body(...)):
    res = _run(assessment_id, req, trace=True)
    body = trace_to_csv(res.trace)
    filename = f"{assessment_id}_trace.csv"
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=\"{filename}\""},
    )

@app.post("/admin/reload")
def reload_definitions():
    try:
        REGISTRY.reload(definitions_dir(load_config()))
    except ConfigError as e:
        # the previous table stays in place
        raise HTTPException(500, f"reload failed: {e}")
    return {"ok": True, "definitions": len(REGISTRY)}
