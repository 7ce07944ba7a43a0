"""
Branch resolution for branchpromote.

CI systems expose the building branch in different places and shapes
(BRANCH_NAME, GIT_BRANCH=origin/dev, GITHUB_REF_NAME, ...). Resolution
walks the candidates in order and never fails: a missing branch is a
normal case that falls back to the configured default.
"""

import os
from typing import Iterable, List, Mapping, Optional

# Longest first so refs/remotes/origin/ wins over refs/
REMOTE_QUALIFIERS = (
    'refs/remotes/origin/',
    'refs/heads/',
    'origin/',
)


def normalize_branch(candidate: str) -> str:
    """Strip whitespace and a remote qualifier from a branch name."""
    name = candidate.strip()
    for qualifier in REMOTE_QUALIFIERS:
        if name.startswith(qualifier) and len(name) > len(qualifier):
            return name[len(qualifier):]
    return name


def resolve_branch(candidates: Iterable[Optional[str]], default: str) -> str:
    """
    Return the first non-empty candidate, normalized.

    Args:
        candidates: Ordered branch sources; None and blank entries are skipped
        default: Returned when every candidate is empty

    Returns:
        Branch name
    """
    for candidate in candidates:
        if candidate is None:
            continue
        name = normalize_branch(candidate)
        if name:
            return name
    return default


def branch_candidates(
    explicit: Optional[str],
    env_names: Iterable[str],
    environ: Optional[Mapping[str, str]] = None,
) -> List[Optional[str]]:
    """
    Build the ordered candidate list: explicit value, then env variables.

    Args:
        explicit: Value given on the command line (may be None)
        env_names: Environment variable names to consult, in order
        environ: Environment mapping (defaults to os.environ)
    """
    if environ is None:
        environ = os.environ
    return [explicit] + [environ.get(name) for name in env_names]
