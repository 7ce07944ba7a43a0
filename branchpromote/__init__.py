"""
branchpromote - Branch-driven deployment promotion for CI/CD pipelines.

branchpromote decides where a build goes and moves it there safely:
the building branch is mapped through an ordered rule table to an
environment, credential set and deployment descriptor; the artifact gets
an immutable tag; the descriptor's image line is rewritten and committed;
and commits made by the automation itself never re-trigger a promotion.

Quick Start:
    import branchpromote

    # Pure decisions
    branchpromote.artifact_tag("release/v1", 42)       # "release-v1-42"
    rules = branchpromote.rules_from_config(branchpromote.load_config())
    decision = branchpromote.evaluate("hotfix/urgent-fix", rules)

    # Full run with the configured collaborators
    service = branchpromote.PromotionService()
    outcome = service.run(branch="hotfix/urgent-fix", sequence_number=13)
    print(outcome.kind.value, outcome.context.tag)

Outcome kinds:
    deployed - descriptor committed and rollout finished
    skipped  - last commit was the automation's own; nothing to do
    rejected - branch not covered by any promotion rule
    failed   - a step failed; see failed_at and cause
"""

__version__ = "0.3.0"

# Domain
from .domain import (
    Environment,
    PromotionRule,
    PromotionDecision,
    PipelineState,
    OutcomeKind,
    PromotionOutcome,
    resolve_branch,
    evaluate,
    rules_from_config,
    artifact_tag,
    rewrite,
)

# Services
from .services import LoopGuard, PromotionService, should_skip

# Errors
from .exceptions import (
    PromotionError,
    InvalidInput,
    PolicyRejected,
    DescriptorMalformed,
    CollaboratorFailure,
    LookupDegraded,
)

# Configuration
from .config import load_config, save_config

__all__ = [
    "__version__",
    "Environment",
    "PromotionRule",
    "PromotionDecision",
    "PipelineState",
    "OutcomeKind",
    "PromotionOutcome",
    "resolve_branch",
    "evaluate",
    "rules_from_config",
    "artifact_tag",
    "rewrite",
    "LoopGuard",
    "PromotionService",
    "should_skip",
    "PromotionError",
    "InvalidInput",
    "PolicyRejected",
    "DescriptorMalformed",
    "CollaboratorFailure",
    "LookupDegraded",
    "load_config",
    "save_config",
]
