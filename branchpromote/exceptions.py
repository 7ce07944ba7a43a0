"""
Exception hierarchy for branchpromote.

Every fatal condition of a promotion run is a PromotionError subclass.
LookupDegraded is the one non-fatal member: it is raised by the git
client when the last commit author cannot be read, and the loop guard
catches it and fails open.
"""

from typing import Optional


class PromotionError(Exception):
    """Base class for promotion errors."""


class InvalidInput(PromotionError):
    """Malformed branch, sequence number or rule data."""


class PolicyRejected(PromotionError):
    """The branch is not covered by any promotion rule."""

    def __init__(self, branch: str, reason: Optional[str] = None):
        self.branch = branch
        self.reason = reason or f"No promotion rule matches branch '{branch}'"
        super().__init__(self.reason)


class DescriptorMalformed(PromotionError):
    """A descriptor rewrite found no image line to replace."""


class CollaboratorFailure(PromotionError):
    """An external tool or service reported failure."""

    def __init__(self, step: str, cause: str):
        self.step = step
        self.cause = cause
        super().__init__(f"{step}: {cause}")


class LookupDegraded(PromotionError):
    """Commit metadata could not be read from version control."""
