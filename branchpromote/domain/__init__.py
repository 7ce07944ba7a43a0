"""
Domain layer for branchpromote.

Contains pure domain objects and functions with no I/O or side effects:
- resolve_branch: Pick the building branch from ordered candidates
- PromotionRule / evaluate: Ordered branch-to-environment policy
- artifact_tag: Immutable per-run image tag
- rewrite: Descriptor image-line rewrite
- PipelineState / PromotionOutcome: Orchestrator states and results
"""

from .branch import resolve_branch, branch_candidates, normalize_branch
from .policy import (
    Environment,
    PromotionRule,
    PromotionDecision,
    evaluate,
    rules_from_config,
    shadowed_rules,
)
from .artifact import BuildIdentity, artifact_tag, image_reference, parse_sequence_number
from .descriptor import rewrite, current_image
from .outcome import (
    PipelineState,
    OutcomeKind,
    PromotionContext,
    PromotionOutcome,
    can_transition,
)

__all__ = [
    'resolve_branch',
    'branch_candidates',
    'normalize_branch',
    'Environment',
    'PromotionRule',
    'PromotionDecision',
    'evaluate',
    'rules_from_config',
    'shadowed_rules',
    'BuildIdentity',
    'artifact_tag',
    'image_reference',
    'parse_sequence_number',
    'rewrite',
    'current_image',
    'PipelineState',
    'OutcomeKind',
    'PromotionContext',
    'PromotionOutcome',
    'can_transition',
]
