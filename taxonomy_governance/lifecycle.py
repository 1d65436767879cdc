"""
Change Lifecycle
Tracks every proposed edit from submission to the user's final decision.

High-risk edits become a HighRiskReview that blocks bulk apply until the
user accepts, dismisses, contacts an owner, or takes the workaround. All
other edits land immediately as a group of DraftChanges that are annotated
once their analysis arrives.

    analyzing -> resolved -> accepted | dismissed | contacted | workaround-accepted

Evaluation runs as an asyncio task per entry. A result that arrives after
the user already closed the entry is stored on the entry and has no other
effect.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
from uuid import uuid4

from taxonomy_governance.audit import AuditSpineManager
from taxonomy_governance.config import CONFIG
from taxonomy_governance.decision import DecisionService
from taxonomy_governance.operations import (
    Confidence,
    NodeLevel,
    OperationContext,
    OperationRisk,
    OperationType,
    PartialItem,
    Verdict,
    WorkaroundType,
    get_operation_risk,
    is_high_risk,
)
from taxonomy_governance.policy_engine import EvaluationResult
from taxonomy_governance.structural_diff import (
    DiffItem,
    build_diff,
    describe_operation,
    draft_fields_for,
    group_action,
)
from taxonomy_governance.workarounds import workaround_steps

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class InvalidTransition(ValueError):
    """The entry is not in a state that allows the requested action."""


class UnknownEntry(KeyError):
    """No review, draft group or draft change has this id."""


class ProcessingInProgress(RuntimeError):
    """Applied changes are still being processed; edits are gated."""


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class AnalysisStatus(str, Enum):
    PENDING = "pending"
    ANALYZING = "analyzing"
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    ERROR = "error"


class ReviewState(str, Enum):
    ANALYZING = "analyzing"
    RESOLVED = "resolved"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"
    CONTACTED = "contacted"
    WORKAROUND_ACCEPTED = "workaround-accepted"


class Resolution(str, Enum):
    DISMISSED = "dismissed"
    CONTACTED = "contacted"
    WORKAROUND_ACCEPTED = "workaround-accepted"


TERMINAL_STATES = {
    ReviewState.ACCEPTED,
    ReviewState.DISMISSED,
    ReviewState.CONTACTED,
    ReviewState.WORKAROUND_ACCEPTED,
}

# Drafts kept for the record only; apply_all skips them
INERT_RESOLUTIONS = {Resolution.DISMISSED, Resolution.CONTACTED}


def status_for(verdict: Verdict, confidence: Confidence) -> AnalysisStatus:
    if verdict == Verdict.REJECT:
        return AnalysisStatus.FAIL
    if verdict == Verdict.APPROVE and confidence == Confidence.HIGH:
        return AnalysisStatus.PASS
    return AnalysisStatus.WARN


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass
class AgentAnalysis:
    status: AnalysisStatus = AnalysisStatus.ANALYZING
    verdict: Optional[Verdict] = None
    confidence: Optional[Confidence] = None
    risks: list[str] = field(default_factory=list)
    summary: str = ""
    workaround: Optional[str] = None
    workaround_type: Optional[WorkaroundType] = None
    workaround_context: Optional[OperationContext] = None
    partial_items: list[PartialItem] = field(default_factory=list)
    operation_type: Optional[OperationType] = None
    operation_risk: Optional[OperationRisk] = None
    error: Optional[str] = None

    @classmethod
    def from_result(cls, result: EvaluationResult) -> "AgentAnalysis":
        return cls(
            status=status_for(result.verdict, result.confidence),
            verdict=result.verdict,
            confidence=result.confidence,
            risks=list(result.risks),
            summary=result.response or result.summary(),
            workaround=result.workaround,
            workaround_type=result.workaround_type,
            workaround_context=result.workaround_context,
            partial_items=list(result.partial_items),
            operation_type=result.operation_type,
            operation_risk=result.operation_risk,
        )

    @classmethod
    def from_error(cls, exc: BaseException, operation_type: Optional[OperationType]) -> "AgentAnalysis":
        return cls(
            status=AnalysisStatus.ERROR,
            summary="Analysis failed; review this change manually.",
            operation_type=operation_type,
            operation_risk=get_operation_risk(operation_type),
            error=f"{type(exc).__name__}: {exc}",
        )

    @property
    def resolved(self) -> bool:
        return self.status not in (AnalysisStatus.PENDING, AnalysisStatus.ANALYZING)

    @property
    def offers_workaround(self) -> bool:
        """WORKAROUND verdicts, and REJECTs that carry a structured alternative."""
        if self.workaround_type is None:
            return False
        return self.verdict in (Verdict.WORKAROUND, Verdict.REJECT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "verdict": self.verdict.value if self.verdict else None,
            "confidence": self.confidence.value if self.confidence else None,
            "risks": list(self.risks),
            "summary": self.summary,
            "workaround": self.workaround,
            "workaroundType": self.workaround_type.value if self.workaround_type else None,
            "workaroundContext": (
                self.workaround_context.to_wire(partial=True) if self.workaround_context else None
            ),
            "partialItems": [item.model_dump(by_alias=True) for item in self.partial_items],
            "operationType": self.operation_type.value if self.operation_type else None,
            "operationRisk": self.operation_risk.value if self.operation_risk else None,
            "error": self.error,
        }


@dataclass
class DraftChange:
    id: str
    group_id: str
    node_id: str
    node_name: str
    node_level: NodeLevel
    field: str
    old_value: str
    new_value: str
    operation_type: Optional[OperationType]
    operation_description: str
    timestamp: datetime = field(default_factory=_now)
    analysis: Optional[AgentAnalysis] = None
    resolution: Optional[Resolution] = None

    @property
    def inert(self) -> bool:
        return self.resolution in INERT_RESOLUTIONS

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "groupId": self.group_id,
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "nodeLevel": self.node_level.value,
            "field": self.field,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "operationType": self.operation_type.value if self.operation_type else None,
            "operationDescription": self.operation_description,
            "timestamp": self.timestamp.isoformat(),
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "resolution": self.resolution.value if self.resolution else None,
        }


@dataclass
class _TrackedEdit:
    """Common shape of a HighRiskReview and a DraftGroup."""
    id: str
    node_id: str
    node_name: str
    node_level: NodeLevel
    operation_type: Optional[OperationType]
    context: OperationContext
    diff_items: list[DiffItem]
    description: str
    created_at: datetime = field(default_factory=_now)
    analysis: AgentAnalysis = field(default_factory=AgentAnalysis)
    state: ReviewState = ReviewState.ANALYZING
    late_analysis: Optional[AgentAnalysis] = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "nodeLevel": self.node_level.value,
            "operationType": self.operation_type.value if self.operation_type else None,
            "context": self.context.to_wire(),
            "diffItems": [item.to_dict() for item in self.diff_items],
            "description": self.description,
            "createdAt": self.created_at.isoformat(),
            "analysis": self.analysis.to_dict(),
            "lateAnalysis": self.late_analysis.to_dict() if self.late_analysis else None,
            "state": self.state.value,
        }


@dataclass
class HighRiskReview(_TrackedEdit):
    pass


@dataclass
class DraftGroup(_TrackedEdit):
    change_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["changeIds"] = list(self.change_ids)
        return data


@dataclass
class ProcessingState:
    is_processing: bool = False
    estimate: Optional[str] = None
    started_at: Optional[datetime] = None
    applied_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "isProcessing": self.is_processing,
            "estimate": self.estimate,
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "appliedCount": self.applied_count,
        }


TrackedEdit = Union[HighRiskReview, DraftGroup]


# ---------------------------------------------------------------------------
# ChangeLifecycleManager
# ---------------------------------------------------------------------------

class ChangeLifecycleManager:
    """
    Stateful orchestrator for one editing session.

    Holds the pending HighRiskReviews, the DraftChanges, and the
    processing flag set by apply_all. Must be driven from a running
    asyncio event loop.
    """

    def __init__(
        self,
        decision: DecisionService | None = None,
        audit: AuditSpineManager | None = None,
        processing_estimate: str | None = None,
        actor_id: str = "operator",
    ):
        self.decision = decision or DecisionService(audit=audit)
        self.audit = audit
        self.processing_estimate = processing_estimate or CONFIG.processing_estimate
        self.actor_id = actor_id
        self.processing = ProcessingState()

        self._open: dict[str, TrackedEdit] = {}
        self._closed: dict[str, TrackedEdit] = {}
        self._drafts: dict[str, DraftChange] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # -- queries -----------------------------------------------------------

    def pending_reviews(self) -> list[HighRiskReview]:
        return [e for e in self._open.values() if isinstance(e, HighRiskReview)]

    def drafts(self) -> list[DraftChange]:
        return list(self._drafts.values())

    def draft_groups(self) -> list[dict[str, Any]]:
        """Drafts grouped by the edit that produced them, in creation order."""
        groups: dict[str, list[DraftChange]] = {}
        for change in self._drafts.values():
            groups.setdefault(change.group_id, []).append(change)
        return [
            {
                "groupId": group_id,
                "description": changes[0].operation_description,
                "action": group_action(c.field for c in changes).value,
                "changes": [c.to_dict() for c in changes],
            }
            for group_id, changes in groups.items()
        ]

    def get_entry(self, entry_id: str) -> TrackedEdit:
        entry = self._open.get(entry_id) or self._closed.get(entry_id)
        if entry is None:
            raise UnknownEntry(entry_id)
        return entry

    def get_draft(self, change_id: str) -> DraftChange:
        change = self._drafts.get(change_id)
        if change is None:
            raise UnknownEntry(change_id)
        return change

    # -- initiation --------------------------------------------------------

    def initiate(
        self,
        node_id: str,
        node_name: str,
        node_level: NodeLevel | str,
        operation_type: Any,
        context: Any = None,
    ) -> TrackedEdit:
        """
        Register an edit and start its evaluation in the background.

        Returns immediately with the entry in the `analyzing` state.

        Raises:
            ProcessingInProgress: a previous apply is still being processed.
        """
        if self.processing.is_processing:
            raise ProcessingInProgress(
                f"Changes are being processed (estimate: {self.processing.estimate})"
            )

        ctx = context if isinstance(context, OperationContext) else OperationContext.model_validate(context or {})
        op = OperationType.parse(operation_type)
        level = NodeLevel(node_level)
        diff_items = build_diff(op or operation_type, ctx, node_name)
        description = describe_operation(op or operation_type, ctx, node_name)

        # Unknown operations are routed to review, never straight to drafts
        if op is None or is_high_risk(op):
            entry: TrackedEdit = HighRiskReview(
                id=_new_id("review"), node_id=node_id, node_name=node_name, node_level=level,
                operation_type=op, context=ctx, diff_items=diff_items, description=description,
            )
        else:
            entry = DraftGroup(
                id=_new_id("group"), node_id=node_id, node_name=node_name, node_level=level,
                operation_type=op, context=ctx, diff_items=diff_items, description=description,
            )
            for change in self._materialize(entry, entry.analysis, None):
                entry.change_ids.append(change.id)

        self._open[entry.id] = entry
        self._log("CHANGE_INITIATED", entry, {"description": description})

        loop = asyncio.get_running_loop()
        self._tasks[entry.id] = loop.create_task(self._evaluate(entry.id, op or operation_type, ctx))
        return entry

    async def _evaluate(self, entry_id: str, operation_type: Any, ctx: OperationContext) -> None:
        try:
            result = await self.decision.evaluate(operation_type, ctx, actor_id=self.actor_id)
            analysis = AgentAnalysis.from_result(result)
        except Exception as exc:
            logger.exception("evaluation failed for %s", entry_id)
            analysis = AgentAnalysis.from_error(exc, OperationType.parse(operation_type))
        finally:
            self._tasks.pop(entry_id, None)
        self._resolve(entry_id, analysis)

    def _resolve(self, entry_id: str, analysis: AgentAnalysis) -> None:
        entry = self.get_entry(entry_id)

        if entry.terminal:
            logger.info("late analysis for closed entry %s (%s)", entry_id, entry.state.value)
            entry.late_analysis = analysis
            # Inert drafts created before the result arrived still show it
            for change in self._drafts.values():
                if change.group_id == entry_id and (change.analysis is None or not change.analysis.resolved):
                    change.analysis = analysis
            return

        entry.analysis = analysis
        entry.state = ReviewState.RESOLVED
        if isinstance(entry, DraftGroup):
            for change_id in entry.change_ids:
                change = self._drafts.get(change_id)
                if change is not None:
                    change.analysis = analysis

    async def settle(self) -> None:
        """Wait for every in-flight evaluation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()))

    # -- transitions -------------------------------------------------------

    def _open_entry(self, entry_id: str) -> TrackedEdit:
        entry = self.get_entry(entry_id)
        if entry.terminal:
            raise InvalidTransition(f"{entry_id} is already {entry.state.value}")
        return entry

    def _close(self, entry: TrackedEdit, state: ReviewState) -> None:
        entry.state = state
        self._open.pop(entry.id, None)
        self._closed[entry.id] = entry
        self._log(f"CHANGE_{state.name}", entry, {})

    def _materialize(
        self,
        entry: TrackedEdit,
        analysis: Optional[AgentAnalysis],
        resolution: Optional[Resolution],
    ) -> list[DraftChange]:
        changes = []
        for item in entry.diff_items:
            fields = draft_fields_for(item)
            change = DraftChange(
                id=_new_id("change"),
                group_id=entry.id,
                node_id=entry.node_id,
                node_name=item.node_name or entry.node_name,
                node_level=item.node_type,
                field=fields.field,
                old_value=fields.old_value,
                new_value=fields.new_value,
                operation_type=entry.operation_type,
                operation_description=entry.description,
                analysis=analysis,
                resolution=resolution,
            )
            self._drafts[change.id] = change
            changes.append(change)
        return changes

    def accept(self, review_id: str) -> list[DraftChange]:
        """Turn a resolved review into one DraftChange per diff item."""
        entry = self._open_entry(review_id)
        if not isinstance(entry, HighRiskReview):
            raise InvalidTransition(f"{review_id} is not a high-risk review")
        if entry.state != ReviewState.RESOLVED:
            raise InvalidTransition(f"{review_id} is still being analyzed")
        if entry.analysis.verdict == Verdict.REJECT:
            raise InvalidTransition(f"{review_id} was rejected; dismiss it or take the workaround")

        changes = self._materialize(entry, entry.analysis, None)
        self._close(entry, ReviewState.ACCEPTED)
        return changes

    def _resolve_by_user(self, entry_id: str, resolution: Resolution) -> list[DraftChange]:
        entry = self._open_entry(entry_id)
        state = ReviewState(resolution.value)

        if isinstance(entry, HighRiskReview):
            changes = self._materialize(entry, entry.analysis, resolution)
        else:
            changes = [self._drafts[cid] for cid in entry.change_ids if cid in self._drafts]
            for change in changes:
                change.resolution = resolution

        self._close(entry, state)
        return changes

    def dismiss(self, entry_id: str) -> list[DraftChange]:
        """Valid in any open state, including while analysis is in flight."""
        return self._resolve_by_user(entry_id, Resolution.DISMISSED)

    reject = dismiss

    def contact(self, entry_id: str) -> list[DraftChange]:
        return self._resolve_by_user(entry_id, Resolution.CONTACTED)

    def accept_workaround(
        self,
        entry_id: str,
        destination_override: Optional[str] = None,
    ) -> list[DraftChange]:
        """
        Replace the edit with the steps of its suggested workaround.

        Raises:
            InvalidTransition: not resolved, or the analysis offers no workaround.
            IncompleteWorkaround: the workaround lacks a name it needs.
        """
        entry = self._open_entry(entry_id)
        if entry.state != ReviewState.RESOLVED:
            raise InvalidTransition(f"{entry_id} is still being analyzed")
        analysis = entry.analysis
        if not analysis.offers_workaround:
            raise InvalidTransition(f"{entry_id} has no workaround to accept")

        steps = workaround_steps(
            analysis.workaround_type, analysis.workaround_context,
            destination_override, entry.node_level,
        )

        if isinstance(entry, DraftGroup):
            for change_id in entry.change_ids:
                self._drafts.pop(change_id, None)

        changes = []
        for step in steps:
            change = DraftChange(
                id=_new_id("change"),
                group_id=entry.id,
                node_id=entry.node_id,
                node_name=step.node_name,
                node_level=step.node_level,
                field=step.field,
                old_value=step.old_value,
                new_value=step.new_value,
                operation_type=entry.operation_type,
                operation_description=f"Workaround for {entry.description}",
                analysis=analysis,
                resolution=Resolution.WORKAROUND_ACCEPTED,
            )
            self._drafts[change.id] = change
            changes.append(change)

        self._close(entry, ReviewState.WORKAROUND_ACCEPTED)
        return changes

    def set_resolution(self, change_id: str, resolution: Resolution | str) -> DraftChange:
        change = self.get_draft(change_id)
        change.resolution = Resolution(resolution)
        return change

    def undo(self, change_id: str) -> bool:
        """Remove one DraftChange. Nothing else is touched."""
        return self._drafts.pop(change_id, None) is not None

    # -- bulk --------------------------------------------------------------

    def apply_all(self) -> list[DraftChange]:
        """
        Apply every non-inert DraftChange and start processing.

        Raises:
            ProcessingInProgress: already processing.
            InvalidTransition: reviews are pending, or there is nothing to apply.
        """
        if self.processing.is_processing:
            raise ProcessingInProgress("Changes are already being processed")
        pending = self.pending_reviews()
        if pending:
            raise InvalidTransition(f"{len(pending)} high-risk review(s) still pending")

        applied = [c for c in self._drafts.values() if not c.inert]
        if not applied:
            raise InvalidTransition("No draft changes to apply")

        self._drafts.clear()
        for entry in list(self._open.values()):
            self._close(entry, ReviewState.ACCEPTED)

        self.processing = ProcessingState(
            is_processing=True,
            estimate=self.processing_estimate,
            started_at=_now(),
            applied_count=len(applied),
        )
        logger.info("applied %d change(s); processing for %s", len(applied), self.processing_estimate)
        if self.audit is not None:
            self.audit.log_event(
                actor_id=self.actor_id,
                action_type="DRAFTS_APPLIED",
                intent_payload={
                    "changes": [c.to_dict() for c in applied],
                    "estimate": self.processing_estimate,
                },
            )
        return applied

    def discard_all(self) -> int:
        count = len(self._drafts)
        self._drafts.clear()
        for entry in list(self._open.values()):
            if isinstance(entry, DraftGroup):
                self._close(entry, ReviewState.DISMISSED)
        return count

    def complete_processing(self) -> ProcessingState:
        """External signal that the backfill finished; clears the gate."""
        finished = self.processing
        self.processing = ProcessingState()
        if finished.is_processing:
            logger.info("processing of %d change(s) complete", finished.applied_count)
        return finished

    # -- audit -------------------------------------------------------------

    def _log(self, action_type: str, entry: TrackedEdit, extra: dict[str, Any]) -> None:
        if self.audit is None:
            return
        self.audit.log_event(
            actor_id=self.actor_id,
            action_type=action_type,
            intent_payload={
                "entry_id": entry.id,
                "operation_type": entry.operation_type.value if entry.operation_type else None,
                "state": entry.state.value,
                **extra,
            },
        )
