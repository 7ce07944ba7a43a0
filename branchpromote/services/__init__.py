"""
Service layer for branchpromote.

Contains logic that orchestrates domain objects and infrastructure:
- LoopGuard: Self-trigger loop prevention
- PromotionService: End-to-end promotion state machine

Services are the primary API for commands to use.
"""

from .loop_guard import LoopGuard, LoopVerdict, should_skip
from .promotion_service import PromotionService, StateMachine

__all__ = [
    'LoopGuard',
    'LoopVerdict',
    'should_skip',
    'PromotionService',
    'StateMachine',
]
