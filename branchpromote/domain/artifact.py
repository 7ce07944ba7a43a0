"""
Artifact tagging for branchpromote.

A tag is derived once per pipeline run from the branch and the build
sequence number supplied by the CI system. It is immutable and must be
usable both as a container image tag and as a single path segment.
"""

from dataclasses import dataclass

from ..exceptions import InvalidInput


@dataclass(frozen=True)
class BuildIdentity:
    """Branch plus CI build sequence number."""
    branch: str
    sequence_number: int

    @property
    def tag(self) -> str:
        return artifact_tag(self.branch, self.sequence_number)


def artifact_tag(branch: str, sequence_number: int) -> str:
    """
    Derive the artifact tag for a build.

    Every '/' in the branch becomes '-', then '-<sequence_number>' is
    appended: ("release/v1", 42) -> "release-v1-42".

    Raises:
        InvalidInput: If branch is empty or sequence_number is not a positive int
    """
    if not branch or not branch.strip():
        raise InvalidInput("Cannot tag an artifact for an empty branch")
    # bool is an int subclass; True is not a build number
    if isinstance(sequence_number, bool) or not isinstance(sequence_number, int):
        raise InvalidInput(f"Build sequence number must be an integer, got {sequence_number!r}")
    if sequence_number <= 0:
        raise InvalidInput(f"Build sequence number must be positive, got {sequence_number}")
    return f"{branch.replace('/', '-')}-{sequence_number}"


def parse_sequence_number(value) -> int:
    """Parse a build number from CLI or environment input."""
    if value is None or str(value).strip() == '':
        raise InvalidInput("No build sequence number given")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise InvalidInput(f"Build sequence number must be an integer, got {value!r}")
    if number <= 0:
        raise InvalidInput(f"Build sequence number must be positive, got {number}")
    return number


def image_reference(registry: str, repository: str, tag: str) -> str:
    """Compose 'registry/repository:tag' (registry may be empty)."""
    if not repository:
        raise InvalidInput("Image repository is not configured")
    name = f"{registry.rstrip('/')}/{repository}" if registry else repository
    return f"{name}:{tag}"
