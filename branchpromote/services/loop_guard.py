"""
Self-trigger loop prevention for branchpromote.

The pipeline commits the updated descriptor back to the branch it is
building. Without a guard, that commit triggers the pipeline again,
which deploys and commits again, indefinitely. The guard runs once,
before anything else, and skips the run when the last commit was
authored by the automation identity.

If the author cannot be read the guard fails open: the run proceeds and
the degraded lookup is logged.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..exceptions import LookupDegraded
from ..infra.git_client import GitClient

logger = logging.getLogger(__name__)


def should_skip(last_author_email: Optional[str], automation_email: str) -> bool:
    """True only if the author is known and equals the automation email (case-sensitive)."""
    if not last_author_email:
        return False
    return last_author_email == automation_email


@dataclass(frozen=True)
class LoopVerdict:
    """Result of one loop-guard check."""
    skip: bool
    author: Optional[str]
    degraded: bool
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        result = {'skip': self.skip, 'degraded': self.degraded, 'reason': self.reason}
        if self.author:
            result['author'] = self.author
        return result


class LoopGuard:
    """
    Check the most recent commit against the automation identity.

    Example:
        guard = LoopGuard(GitClient(), "ci-bot@example.com", repo_path=".")
        if guard.check().skip:
            return
    """

    def __init__(self, git_client: GitClient, automation_email: str, repo_path: str = "."):
        self.git = git_client
        self.automation_email = automation_email
        self.repo_path = repo_path

    def check(self, ref: str = "HEAD") -> LoopVerdict:
        try:
            author = self.git.last_commit_author(self.repo_path, ref)
        except LookupDegraded as e:
            logger.warning(f"LookupDegraded: {e}; continuing without loop check")
            return LoopVerdict(
                skip=False,
                author=None,
                degraded=True,
                reason=f"Author lookup failed, proceeding: {e}",
            )

        if should_skip(author, self.automation_email):
            return LoopVerdict(
                skip=True,
                author=author,
                degraded=False,
                reason=f"Last commit on {ref} was authored by automation ({author})",
            )

        return LoopVerdict(
            skip=False,
            author=author,
            degraded=False,
            reason=f"Last commit on {ref} authored by {author or 'unknown'}",
        )
