"""
External tool adapters for branchpromote.

Build, scan, container and deployment tools are collaborators with fixed
contracts. Each adapter renders a configured command template, runs it,
and reports a ToolResult. Nothing here retries: a failure is reported
once with the tool's own output as the cause.

Templates use str.format placeholders, e.g.
    "docker build -t {image} {context}"
Placeholder values are shell-quoted before substitution. Literal braces,
such as shell parameter expansion, are doubled:
    "mvn -B -Dhome=${{HOME}} compile"
A template that cannot be rendered fails its step like any other tool
failure.
"""

import shlex
import subprocess
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Keep causes readable in JSON outcomes
MAX_CAUSE_CHARS = 2000


@dataclass
class ToolResult:
    """Result of one external tool invocation."""
    success: bool
    output: str = ""
    cause: Optional[str] = None
    returncode: int = 0


@dataclass
class ScanReport:
    """Scanner result; `passed` reflects the tool's own verdict."""
    passed: bool
    report_path: Optional[str] = None
    summary: str = ""


def _tail(text: str) -> str:
    text = text.strip()
    if len(text) > MAX_CAUSE_CHARS:
        return "..." + text[-MAX_CAUSE_CHARS:]
    return text


class CommandRunner:
    """
    Render and run command templates.

    Example:
        runner = CommandRunner(timeout=600)
        result = runner.run("docker push {image}", image="registry/app:dev-7")
    """

    def __init__(self, timeout: int = 1800, cwd: Optional[str] = None):
        self.timeout = timeout
        self.cwd = cwd

    def render(self, template: str, **fields: Any) -> str:
        """Substitute shell-quoted fields into a template."""
        quoted = {key: shlex.quote(str(value)) for key, value in fields.items()}
        try:
            return template.format(**quoted)
        except (KeyError, IndexError) as e:
            raise ValueError(f"Command template '{template}' references unknown field {e}")
        except ValueError as e:
            raise ValueError(f"Command template '{template}' is malformed: {e}")

    def run(self, template: Optional[str], cwd: Optional[str] = None, **fields: Any) -> ToolResult:
        """
        Run a command template.

        An empty template is a no-op success, which lets a pipeline
        disable a step (e.g. no separate package phase) through config.
        """
        if not template:
            return ToolResult(success=True, output="step disabled")

        try:
            cmd = self.render(template, **fields)
        except ValueError as e:
            return ToolResult(success=False, cause=str(e), returncode=-1)
        logger.debug(f"Running: {cmd}")
        try:
            result = subprocess.run(
                cmd,
                shell=True,
                cwd=cwd or self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout
            )
        except subprocess.TimeoutExpired:
            return ToolResult(success=False, cause=f"'{cmd}' timed out after {self.timeout}s", returncode=-1)
        except OSError as e:
            return ToolResult(success=False, cause=f"'{cmd}' could not start: {e}", returncode=-1)

        output = (result.stdout or "") + (result.stderr or "")
        if result.returncode != 0:
            cause = _tail(output) or f"'{cmd}' exited with status {result.returncode}"
            return ToolResult(success=False, output=output, cause=cause, returncode=result.returncode)
        return ToolResult(success=True, output=output, returncode=0)


class BuildTool:
    """Compiles and packages the application (e.g. Maven)."""

    def __init__(self, runner: CommandRunner, commands: Dict[str, Any]):
        self.runner = runner
        self.commands = commands

    def build(self, source_dir: str) -> ToolResult:
        return self.runner.run(self.commands.get("build"), cwd=source_dir, source=source_dir)

    def package(self, source_dir: str) -> ToolResult:
        return self.runner.run(self.commands.get("package"), cwd=source_dir, source=source_dir)


class Scanner:
    """Static analysis; never fatal unless the scan gate is enabled."""

    def __init__(self, runner: CommandRunner, commands: Dict[str, Any], report_path: Optional[str] = None):
        self.runner = runner
        self.commands = commands
        self.report_path = report_path

    def scan(self, target_dir: str) -> ScanReport:
        result = self.runner.run(
            self.commands.get("scan"),
            cwd=target_dir,
            target=target_dir,
            report=self.report_path or "",
        )
        summary = result.cause if not result.success else _tail(result.output)
        return ScanReport(passed=result.success, report_path=self.report_path, summary=summary or "")


class ImageBuilder:
    """Container image build and registry push."""

    def __init__(self, runner: CommandRunner, commands: Dict[str, Any]):
        self.runner = runner
        self.commands = commands

    def build_image(self, context: str, image: str) -> ToolResult:
        return self.runner.run(self.commands.get("image_build"), context=context, image=image)

    def push(self, image: str) -> ToolResult:
        return self.runner.run(self.commands.get("image_push"), image=image)


class DeployExecutor:
    """Applies descriptors to a runtime and waits for rollout."""

    def __init__(self, runner: CommandRunner, commands: Dict[str, Any], rollout_timeout: int = 300):
        self.runner = runner
        self.commands = commands
        self.rollout_timeout = rollout_timeout

    def apply(self, descriptor_path: str, credential_set_id: str) -> ToolResult:
        return self.runner.run(
            self.commands.get("apply"),
            descriptor=descriptor_path,
            credentials=credential_set_id,
        )

    def wait_for_rollout(self, resource: str, namespace: str, credential_set_id: str) -> ToolResult:
        return self.runner.run(
            self.commands.get("rollout"),
            resource=resource,
            namespace=namespace,
            credentials=credential_set_id,
            timeout=self.rollout_timeout,
        )
