"""
Infrastructure layer for branchpromote.

Contains abstractions for external systems:
- GitClient: Git command execution (author lookup, commit, push)
- CommandRunner: Templated tool invocation
- BuildTool, Scanner, ImageBuilder, DeployExecutor: Pipeline collaborators
- DescriptorStore: Atomic descriptor file persistence

These provide clean interfaces that can be mocked for testing.
"""

from .git_client import GitClient, CommitResult, CommitStatus, PushResult
from .tools import (
    CommandRunner,
    ToolResult,
    ScanReport,
    BuildTool,
    Scanner,
    ImageBuilder,
    DeployExecutor,
)
from .descriptor_store import DescriptorStore

__all__ = [
    'GitClient',
    'CommitResult',
    'CommitStatus',
    'PushResult',
    'CommandRunner',
    'ToolResult',
    'ScanReport',
    'BuildTool',
    'Scanner',
    'ImageBuilder',
    'DeployExecutor',
    'DescriptorStore',
]
