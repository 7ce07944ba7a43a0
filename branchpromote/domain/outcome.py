"""
Pipeline state and outcome objects for branchpromote.

The orchestrator is an explicit finite state machine. Every run ends in
exactly one terminal state and is reported as a PromotionOutcome that
tells operators whether the run deployed, skipped its own commit, was
rejected by policy, or failed during a named step.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from .policy import PromotionDecision


class PipelineState(Enum):
    """States of one promotion run."""
    START = "start"
    BRANCH_RESOLVED = "branch_resolved"
    LOOP_CHECK = "loop_check"
    SKIPPED = "skipped"
    POLICY_EVALUATED = "policy_evaluated"
    REJECTED = "rejected"
    BUILDING = "building"
    SCANNED = "scanned"
    PACKAGED = "packaged"
    TAGGED = "tagged"
    PUSHED = "pushed"
    DESCRIPTOR_UPDATED = "descriptor_updated"
    COMMITTED = "committed"
    DEPLOYED = "deployed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: FrozenSet[PipelineState] = frozenset({
    PipelineState.SKIPPED,
    PipelineState.REJECTED,
    PipelineState.DEPLOYED,
    PipelineState.FAILED,
})

_FORWARD = {
    PipelineState.START: {PipelineState.BRANCH_RESOLVED},
    PipelineState.BRANCH_RESOLVED: {PipelineState.LOOP_CHECK},
    PipelineState.LOOP_CHECK: {PipelineState.SKIPPED, PipelineState.POLICY_EVALUATED},
    PipelineState.POLICY_EVALUATED: {PipelineState.REJECTED, PipelineState.BUILDING},
    PipelineState.BUILDING: {PipelineState.SCANNED},
    PipelineState.SCANNED: {PipelineState.PACKAGED},
    PipelineState.PACKAGED: {PipelineState.TAGGED},
    PipelineState.TAGGED: {PipelineState.PUSHED},
    PipelineState.PUSHED: {PipelineState.DESCRIPTOR_UPDATED},
    PipelineState.DESCRIPTOR_UPDATED: {PipelineState.COMMITTED},
    PipelineState.COMMITTED: {PipelineState.DEPLOYED},
}

# Any non-terminal state may fail
ALLOWED_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    state: frozenset(_FORWARD.get(state, set()) | ({PipelineState.FAILED} if not state.terminal else set()))
    for state in PipelineState
}


def can_transition(current: PipelineState, nxt: PipelineState) -> bool:
    return nxt in ALLOWED_TRANSITIONS[current]


class OutcomeKind(Enum):
    """How an operator should read a terminal state."""
    DEPLOYED = "deployed"
    SKIPPED = "skipped"      # Expected steady state: automation's own commit
    REJECTED = "rejected"    # Misconfiguration: branch not covered by policy
    FAILED = "failed"        # A step failed; see failed_at and cause


_KIND_BY_STATE = {
    PipelineState.DEPLOYED: OutcomeKind.DEPLOYED,
    PipelineState.SKIPPED: OutcomeKind.SKIPPED,
    PipelineState.REJECTED: OutcomeKind.REJECTED,
    PipelineState.FAILED: OutcomeKind.FAILED,
}


@dataclass(frozen=True)
class PromotionContext:
    """
    Values derived so far in one run.

    Each step returns a new context (dataclasses.replace); nothing is
    shared between runs.
    """
    branch: Optional[str] = None
    sequence_number: Optional[int] = None
    decision: Optional[PromotionDecision] = None
    tag: Optional[str] = None
    image: Optional[str] = None
    previous_image: Optional[str] = None
    descriptor_content: Optional[str] = None
    commit_created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.branch:
            result['branch'] = self.branch
        if self.sequence_number is not None:
            result['sequence_number'] = self.sequence_number
        if self.decision:
            result['decision'] = self.decision.to_dict()
        if self.tag:
            result['tag'] = self.tag
        if self.image:
            result['image'] = self.image
        if self.previous_image:
            result['previous_image'] = self.previous_image
        return result


@dataclass
class PromotionOutcome:
    """
    Terminal result of a promotion run.

    Attributes:
        state: Terminal state reached
        reason: Human-readable summary
        failed_at: State the run was in when it failed (FAILED only)
        cause: Collaborator or validation cause, verbatim (FAILED only)
        error_type: Error class behind a FAILED run, e.g. "CollaboratorFailure"
        history: States visited, in order
        context: Values derived before the run ended
    """
    state: PipelineState
    reason: str
    failed_at: Optional[PipelineState] = None
    cause: Optional[str] = None
    error_type: Optional[str] = None
    history: List[PipelineState] = field(default_factory=list)
    context: PromotionContext = field(default_factory=PromotionContext)

    @property
    def kind(self) -> OutcomeKind:
        return _KIND_BY_STATE[self.state]

    @property
    def success(self) -> bool:
        """True for a deployment or an expected self-commit skip."""
        return self.kind in (OutcomeKind.DEPLOYED, OutcomeKind.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            'type': 'outcome',
            'state': self.state.value,
            'kind': self.kind.value,
            'success': self.success,
            'reason': self.reason,
        }
        if self.failed_at:
            result['failed_at'] = self.failed_at.value
        if self.cause:
            result['cause'] = self.cause
        if self.error_type:
            result['error_type'] = self.error_type
        result['history'] = [s.value for s in self.history]
        result.update(self.context.to_dict())
        return result
