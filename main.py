"""
Taxonomy Governance Gateway
Single service boundary for proposed taxonomy edits.

POST /evaluate answers "may this edit proceed?" for one operation. The
session endpoints drive the change lifecycle: initiate an edit, resolve
high-risk reviews, take workarounds, and apply or discard the drafts.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from taxonomy_governance.audit import AuditSpineManager
from taxonomy_governance.config import CONFIG, configure_logging
from taxonomy_governance.decision import DecisionService
from taxonomy_governance.lifecycle import (
    ChangeLifecycleManager,
    HighRiskReview,
    InvalidTransition,
    ProcessingInProgress,
    Resolution,
    UnknownEntry,
)
from taxonomy_governance.operations import NodeLevel, OperationContext
from taxonomy_governance.workarounds import IncompleteWorkaround

configure_logging(CONFIG.log_level)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App + shared services
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Taxonomy Governance Gateway",
    version="1.0.0",
)

audit = AuditSpineManager(CONFIG.audit_db) if CONFIG.audit_enabled else None
decision = DecisionService(config=CONFIG, audit=audit)
manager = ChangeLifecycleManager(decision=decision, audit=audit)

# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChangeRequest(_CamelModel):
    node_id: str
    node_name: str
    node_level: NodeLevel
    operation_type: str
    context: dict[str, Any] = Field(default_factory=dict)


class WorkaroundRequest(_CamelModel):
    destination_override: Optional[str] = None


class ResolutionRequest(_CamelModel):
    resolution: Resolution


# ---------------------------------------------------------------------------
# Lifecycle errors -> HTTP status
# ---------------------------------------------------------------------------

@app.exception_handler(UnknownEntry)
async def _unknown_entry(request: Request, exc: UnknownEntry):
    return JSONResponse(status_code=404, content={"error": f"Unknown id: {exc.args[0]}"})


@app.exception_handler(InvalidTransition)
async def _invalid_transition(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(IncompleteWorkaround)
async def _incomplete_workaround(request: Request, exc: IncompleteWorkaround):
    return JSONResponse(status_code=422, content={"error": str(exc)})


@app.exception_handler(ProcessingInProgress)
async def _processing(request: Request, exc: ProcessingInProgress):
    return JSONResponse(
        status_code=423,
        content={"error": str(exc), "processing": manager.processing.to_dict()},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {
        "status": "operational",
        "service": "taxonomy-governance",
        "mode": "remote" if CONFIG.remote_enabled else "local",
    }


@app.post("/evaluate")
async def evaluate(request: Request):
    """
    Evaluate one proposed operation.

    Request:  {operationType, context}
    Response: {success, prompt, response, operationRisk, verdict, confidence,
               risks, workaround?, workaroundType?, workaroundContext?, partialItems?}
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"success": False, "error": "Request body must be JSON"})

    if not isinstance(body, dict) or not body.get("operationType") or not isinstance(body.get("context"), dict):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Missing operationType or context"},
        )

    try:
        context = OperationContext.model_validate(body["context"])
    except ValidationError as exc:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": f"Invalid context: {exc.error_count()} error(s)"},
        )

    try:
        result = await decision.evaluate(
            body["operationType"], context, actor_id=str(body.get("actorId", "operator")),
        )
    except Exception as exc:
        logger.exception("evaluation failed")
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    return {
        "success": True,
        "prompt": result.prompt or "",
        "response": result.response or result.summary(),
        **result.to_wire(),
    }


@app.post("/changes")
async def initiate_change(change: ChangeRequest):
    """Start an edit; analysis runs in the background."""
    try:
        context = OperationContext.model_validate(change.context)
    except ValidationError as exc:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": f"Invalid context: {exc.error_count()} error(s)"},
        )

    entry = manager.initiate(
        change.node_id, change.node_name, change.node_level,
        change.operation_type, context,
    )
    kind = "review" if isinstance(entry, HighRiskReview) else "draft-group"
    return JSONResponse(status_code=202, content={"kind": kind, **entry.to_dict()})


@app.get("/changes")
async def list_changes():
    return {
        "drafts": manager.draft_groups(),
        "pendingReviews": [r.to_dict() for r in manager.pending_reviews()],
        "processing": manager.processing.to_dict(),
    }


@app.get("/entries/{entry_id}")
async def get_entry(entry_id: str):
    return manager.get_entry(entry_id).to_dict()


@app.get("/entries/{entry_id}/history")
async def entry_history(entry_id: str):
    """Audit trail for one entry. 404 when auditing is disabled."""
    if audit is None:
        return JSONResponse(status_code=404, content={"error": "Audit spine is not enabled"})
    manager.get_entry(entry_id)
    return {"entryId": entry_id, "events": audit.events_for_entry(entry_id)}


@app.post("/reviews/{entry_id}/accept")
async def accept_review(entry_id: str):
    changes = manager.accept(entry_id)
    return {"entryId": entry_id, "changes": [c.to_dict() for c in changes]}


@app.post("/reviews/{entry_id}/dismiss")
async def dismiss_review(entry_id: str):
    changes = manager.dismiss(entry_id)
    return {"entryId": entry_id, "changes": [c.to_dict() for c in changes]}


@app.post("/reviews/{entry_id}/contact")
async def contact_owner(entry_id: str):
    changes = manager.contact(entry_id)
    return {"entryId": entry_id, "changes": [c.to_dict() for c in changes]}


@app.post("/entries/{entry_id}/workaround")
async def accept_workaround(entry_id: str, body: Optional[WorkaroundRequest] = None):
    override = body.destination_override if body else None
    changes = manager.accept_workaround(entry_id, override)
    return {"entryId": entry_id, "changes": [c.to_dict() for c in changes]}


@app.post("/drafts/apply")
async def apply_drafts():
    applied = manager.apply_all()
    return {
        "applied": [c.to_dict() for c in applied],
        "processing": manager.processing.to_dict(),
    }


@app.post("/drafts/discard")
async def discard_drafts():
    return {"discarded": manager.discard_all()}


@app.post("/drafts/{change_id}/resolution")
async def set_draft_resolution(change_id: str, body: ResolutionRequest):
    return manager.set_resolution(change_id, body.resolution).to_dict()


@app.delete("/drafts/{change_id}")
async def undo_draft(change_id: str):
    if not manager.undo(change_id):
        raise UnknownEntry(change_id)
    return {"undone": change_id}


@app.post("/processing/complete")
async def complete_processing():
    finished = manager.complete_processing()
    return {"completed": finished.to_dict(), "processing": manager.processing.to_dict()}
