"""
Git client infrastructure for branchpromote.

Provides a clean abstraction over git command execution.
All git operations go through this client, making them:
- Easy to mock for testing
- Consistent in error handling
- Isolated from business logic
"""

import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Tuple
import logging

from ..exceptions import LookupDegraded

logger = logging.getLogger(__name__)

# Markers git prints when the remote has advanced past our base
PUSH_CONFLICT_MARKERS = ('non-fast-forward', 'fetch first', '[rejected]', 'stale info')


class CommitStatus(Enum):
    """Outcome of a commit attempt."""
    COMMITTED = "committed"
    NOOP = "noop"            # Nothing staged; descriptor already up to date
    FAILED = "failed"


@dataclass
class CommitResult:
    """Result of git commit."""
    status: CommitStatus
    output: str = ""
    sha: Optional[str] = None


@dataclass
class PushResult:
    """Result of git push."""
    success: bool
    output: str = ""
    conflict: bool = False


class GitClient:
    """
    Abstraction over git commands.

    Example:
        client = GitClient()
        author = client.last_commit_author("/path/to/repo")
        if author == "ci-bot@example.com":
            print("Last change came from automation")
    """

    def __init__(self, timeout: int = 60):
        """
        Initialize GitClient.

        Args:
            timeout: Command timeout in seconds (default: 60)
        """
        self.timeout = timeout

    def _run(
        self,
        cmd: str,
        cwd: str,
        capture_stderr: bool = False
    ) -> Tuple[Optional[str], int]:
        """
        Run a git command.

        Args:
            cmd: Command to run
            cwd: Working directory
            capture_stderr: Include stderr in output

        Returns:
            Tuple of (stdout, returncode); returncode -1 if git could not run
        """
        try:
            result = subprocess.run(
                cmd,
                shell=True,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )

            output = result.stdout
            if capture_stderr and result.stderr:
                output += result.stderr

            return output.strip() if output else None, result.returncode

        except subprocess.TimeoutExpired:
            logger.warning(f"Git command timed out: {cmd}")
            return None, -1
        except OSError as e:
            logger.error(f"Git command failed: {cmd} - {e}")
            return None, -1

    def last_commit_author(self, path: str, ref: str = "HEAD") -> Optional[str]:
        """
        Get the author email of the most recent commit on a ref.

        Args:
            path: Path to git repository
            ref: Branch or ref to inspect (default: HEAD)

        Returns:
            Author email, or None if the commit has no author email

        Raises:
            LookupDegraded: If git could not answer (no repo, unknown ref, timeout)
        """
        output, code = self._run(f"git log -1 --format=%ae {shlex.quote(ref)}", cwd=path, capture_stderr=True)
        if code != 0:
            raise LookupDegraded(f"Could not read last commit author of {ref} in {path}: {output or 'git failed'}")
        return output.strip() if output else None

    def commit(
        self,
        path: str,
        files: List[str],
        message: str,
        author_name: str,
        author_email: str
    ) -> CommitResult:
        """
        Stage and commit files as the given identity.

        Returns:
            CommitResult; NOOP when the files have no staged changes
        """
        quoted = ' '.join(shlex.quote(f) for f in files)

        output, code = self._run(f"git add -- {quoted}", cwd=path, capture_stderr=True)
        if code != 0:
            return CommitResult(CommitStatus.FAILED, output or "git add failed")

        _, code = self._run(f"git diff --cached --quiet -- {quoted}", cwd=path)
        if code == 0:
            return CommitResult(CommitStatus.NOOP, "nothing to commit")

        identity = f"-c user.name={shlex.quote(author_name)} -c user.email={shlex.quote(author_email)}"
        output, code = self._run(
            f"git {identity} commit -m {shlex.quote(message)} -- {quoted}",
            cwd=path,
            capture_stderr=True
        )
        if code != 0:
            return CommitResult(CommitStatus.FAILED, output or "git commit failed")

        sha, _ = self._run("git rev-parse HEAD", cwd=path)
        return CommitResult(CommitStatus.COMMITTED, output or "", sha=sha)

    def push(self, path: str, remote: str = "origin", branch: Optional[str] = None) -> PushResult:
        """
        Push HEAD to a remote branch.

        A rejection because the remote has advanced is reported with
        conflict=True; retrying is the caller's decision.
        """
        cmd = f"git push {shlex.quote(remote)}"
        if branch:
            cmd += f" HEAD:{shlex.quote(branch)}"
        output, code = self._run(cmd, cwd=path, capture_stderr=True)
        if code == 0:
            return PushResult(success=True, output=output or "")
        text = output or "git push failed"
        conflict = any(marker in text for marker in PUSH_CONFLICT_MARKERS)
        return PushResult(success=False, output=text, conflict=conflict)
