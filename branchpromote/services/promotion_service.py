"""
Promotion orchestration service for branchpromote.

Runs one pipeline promotion as an explicit state machine:

    START -> BRANCH_RESOLVED -> LOOP_CHECK -> SKIPPED
                                           -> POLICY_EVALUATED -> REJECTED
                                                               -> BUILDING -> SCANNED -> PACKAGED
    -> TAGGED -> PUSHED -> DESCRIPTOR_UPDATED -> COMMITTED -> DEPLOYED

Any step may end in FAILED. Failures are never retried here; the outcome
records the step that failed and the collaborator's cause verbatim.
"""

import logging
import os
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from ..config import load_config
from ..domain.artifact import artifact_tag, image_reference, parse_sequence_number
from ..domain.branch import branch_candidates, resolve_branch
from ..domain.descriptor import current_image, rewrite
from ..domain.outcome import (
    PipelineState,
    PromotionContext,
    PromotionOutcome,
    can_transition,
)
from ..domain.policy import PromotionDecision, evaluate, rules_from_config
from ..exceptions import CollaboratorFailure, DescriptorMalformed, InvalidInput, PolicyRejected
from ..infra.descriptor_store import DescriptorStore
from ..infra.git_client import CommitStatus, GitClient
from ..infra.tools import BuildTool, CommandRunner, DeployExecutor, ImageBuilder, Scanner
from .loop_guard import LoopGuard

logger = logging.getLogger(__name__)


class StateMachine:
    """Tracks the current state, the step in flight and the history."""

    def __init__(self):
        self.state = PipelineState.START
        self.pending: Optional[PipelineState] = None
        self.history: List[PipelineState] = [PipelineState.START]

    def begin(self, state: PipelineState) -> None:
        """Mark the state the next step is working towards."""
        self.pending = state

    def advance(self, state: PipelineState) -> None:
        if not can_transition(self.state, state):
            raise RuntimeError(f"Invalid transition {self.state.value} -> {state.value}")
        logger.info(f"{self.state.value} -> {state.value}")
        self.state = state
        self.pending = None
        self.history.append(state)

    @property
    def failure_point(self) -> PipelineState:
        return self.pending or self.state


class PromotionService:
    """
    Service that promotes one build of one branch.

    Example:
        service = PromotionService()
        outcome = service.run(branch="hotfix/urgent-fix", sequence_number=13)
        print(outcome.kind.value, outcome.context.tag)
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        git_client: Optional[GitClient] = None,
        build_tool: Optional[BuildTool] = None,
        scanner: Optional[Scanner] = None,
        image_builder: Optional[ImageBuilder] = None,
        deployer: Optional[DeployExecutor] = None,
        store: Optional[DescriptorStore] = None,
    ):
        """
        Initialize PromotionService.

        Collaborators default to the subprocess adapters built from config.

        Raises:
            InvalidInput: If the configured rule table is malformed
        """
        self.config = config or load_config()
        self.rules = rules_from_config(self.config)

        general = self.config.get('general', {})
        commands = self.config.get('commands', {})
        self.source_dir = general.get('source_dir', '.')

        runner = CommandRunner(timeout=commands.get('timeout_seconds', 1800), cwd=self.source_dir)
        self.git = git_client or GitClient(timeout=self.config.get('git', {}).get('timeout_seconds', 60))
        self.build_tool = build_tool or BuildTool(runner, commands)
        self.scanner = scanner or Scanner(runner, commands, self.config.get('scan', {}).get('report_path'))
        self.image_builder = image_builder or ImageBuilder(runner, commands)
        self.deployer = deployer or DeployExecutor(
            runner,
            commands,
            rollout_timeout=self.config.get('deploy', {}).get('rollout_timeout_seconds', 300),
        )
        self.store = store or DescriptorStore(self.source_dir)

        automation = self.config.get('automation', {})
        self.loop_guard = LoopGuard(self.git, automation.get('email', ''), repo_path=self.source_dir)

    # -- value derivation (no side effects) ----------------------------------

    def resolve(self, branch: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> str:
        """Resolve the building branch from explicit input, then CI environment variables."""
        general = self.config.get('general', {})
        candidates = branch_candidates(branch, general.get('branch_env', []), environ)
        return resolve_branch(candidates, general.get('default_branch', 'dev'))

    def decide(self, branch: str) -> PromotionDecision:
        return evaluate(branch, self.rules)

    def image_for(self, tag: str) -> str:
        image = self.config.get('image', {})
        return image_reference(image.get('registry', ''), image.get('repository', ''), tag)

    def plan(
        self,
        branch: Optional[str] = None,
        sequence_number: Optional[Any] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        Preview a promotion: branch, decision, tag and image, without running anything.
        """
        environ = os.environ if environ is None else environ
        name = self.resolve(branch, environ)
        decision = self.decide(name)
        result: Dict[str, Any] = {'branch': name, 'decision': decision.to_dict()}

        raw = sequence_number if sequence_number is not None else environ.get(self._sequence_env)
        if decision.proceed and raw not in (None, ''):
            tag = artifact_tag(name, parse_sequence_number(raw))
            result['tag'] = tag
            result['image'] = self.image_for(tag)
        return result

    @property
    def _sequence_env(self) -> str:
        return self.config.get('general', {}).get('sequence_env', 'BUILD_NUMBER')

    def commit_message(self, ctx: PromotionContext) -> str:
        """
        Render the descriptor commit message for a run.

        Raises:
            InvalidInput: If the configured template cannot be rendered
        """
        template = self.config.get('git', {}).get('commit_message', 'Promote {environment} to {tag}')
        try:
            return template.format(
                environment=ctx.decision.environment.value,
                tag=ctx.tag,
                image=ctx.image,
                branch=ctx.branch,
            )
        except (KeyError, IndexError) as e:
            raise InvalidInput(f"Commit message template references unknown field {e}")
        except ValueError as e:
            raise InvalidInput(f"Commit message template '{template}' is malformed: {e}")

    # -- orchestration -------------------------------------------------------

    def run(
        self,
        branch: Optional[str] = None,
        sequence_number: Optional[Any] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> PromotionOutcome:
        """
        Run the promotion state machine to a terminal state.

        Args:
            branch: Explicit branch (falls back to CI environment variables)
            sequence_number: Build number (falls back to the sequence env variable)
            environ: Environment mapping (defaults to os.environ)

        Returns:
            PromotionOutcome; this method does not raise for run failures
        """
        environ = os.environ if environ is None else environ
        machine = StateMachine()
        ctx = PromotionContext()

        try:
            ctx = replace(ctx, branch=self.resolve(branch, environ))
            machine.advance(PipelineState.BRANCH_RESOLVED)
            logger.info(f"Building branch {ctx.branch}")

            machine.advance(PipelineState.LOOP_CHECK)
            verdict = self.loop_guard.check()
            if verdict.skip:
                machine.advance(PipelineState.SKIPPED)
                return self._outcome(machine, ctx, verdict.reason)

            decision = self.decide(ctx.branch)
            ctx = replace(ctx, decision=decision)
            machine.advance(PipelineState.POLICY_EVALUATED)
            decision.require()
            logger.info(decision.reason)

            raw = sequence_number if sequence_number is not None else environ.get(self._sequence_env)
            ctx = replace(ctx, sequence_number=parse_sequence_number(raw))

            # A bad commit template must fail before anything is built or written
            tag = artifact_tag(ctx.branch, ctx.sequence_number)
            self.commit_message(replace(ctx, tag=tag, image=self.image_for(tag)))

            ctx = self._build(machine, ctx)
            ctx = self._scan(machine, ctx)
            ctx = self._package(machine, ctx)
            ctx = self._tag(machine, ctx)
            ctx = self._push_image(machine, ctx)
            ctx = self._update_descriptor(machine, ctx)
            ctx = self._commit(machine, ctx)
            ctx = self._deploy(machine, ctx)

            return self._outcome(
                machine,
                ctx,
                f"Deployed {ctx.image} to {decision.environment.value}",
            )

        except PolicyRejected as e:
            logger.error(f"PolicyRejected: {e.reason}")
            machine.advance(PipelineState.REJECTED)
            return self._outcome(machine, ctx, e.reason, error_type=type(e).__name__)
        except CollaboratorFailure as e:
            return self._failed(machine, ctx, e.cause, type(e).__name__, step=e.step)
        except (InvalidInput, DescriptorMalformed) as e:
            return self._failed(machine, ctx, str(e), type(e).__name__)

    # -- steps ---------------------------------------------------------------

    def _build(self, machine: StateMachine, ctx: PromotionContext) -> PromotionContext:
        machine.advance(PipelineState.BUILDING)
        result = self.build_tool.build(self.source_dir)
        if not result.success:
            raise CollaboratorFailure("build", result.cause or "build failed")
        return ctx

    def _scan(self, machine: StateMachine, ctx: PromotionContext) -> PromotionContext:
        machine.begin(PipelineState.SCANNED)
        scan = self.config.get('scan', {})
        report = self.scanner.scan(os.path.join(self.source_dir, scan.get('target_dir', '.')))
        if not report.passed:
            if scan.get('fail_on_findings', False):
                raise CollaboratorFailure("scan", report.summary or "scan reported findings")
            logger.warning(f"Scan did not pass, continuing (scan gate disabled): {report.summary}")
        machine.advance(PipelineState.SCANNED)
        return ctx

    def _package(self, machine: StateMachine, ctx: PromotionContext) -> PromotionContext:
        machine.begin(PipelineState.PACKAGED)
        result = self.build_tool.package(self.source_dir)
        if not result.success:
            raise CollaboratorFailure("package", result.cause or "package failed")
        machine.advance(PipelineState.PACKAGED)
        return ctx

    def _tag(self, machine: StateMachine, ctx: PromotionContext) -> PromotionContext:
        machine.begin(PipelineState.TAGGED)
        tag = artifact_tag(ctx.branch, ctx.sequence_number)
        ctx = replace(ctx, tag=tag, image=self.image_for(tag))
        logger.info(f"Artifact tag {tag}")
        machine.advance(PipelineState.TAGGED)
        return ctx

    def _push_image(self, machine: StateMachine, ctx: PromotionContext) -> PromotionContext:
        machine.begin(PipelineState.PUSHED)
        context_dir = self.config.get('image', {}).get('context', '.')
        result = self.image_builder.build_image(context_dir, ctx.image)
        if not result.success:
            raise CollaboratorFailure("image build", result.cause or "image build failed")
        result = self.image_builder.push(ctx.image)
        if not result.success:
            raise CollaboratorFailure("image push", result.cause or "image push failed")
        machine.advance(PipelineState.PUSHED)
        return ctx

    def _update_descriptor(self, machine: StateMachine, ctx: PromotionContext) -> PromotionContext:
        machine.begin(PipelineState.DESCRIPTOR_UPDATED)
        path = ctx.decision.descriptor_path
        try:
            content = self.store.read(path)
        except (OSError, UnicodeDecodeError) as e:
            raise CollaboratorFailure("descriptor read", f"{path}: {e}")

        # Computed fully in memory before anything is written
        updated = rewrite(content, ctx.image)
        try:
            self.store.write(path, updated)
        except OSError as e:
            raise CollaboratorFailure("descriptor write", f"{path}: {e}")

        ctx = replace(ctx, descriptor_content=updated, previous_image=current_image(content))
        logger.info(f"{path}: {ctx.previous_image} -> {ctx.image}")
        machine.advance(PipelineState.DESCRIPTOR_UPDATED)
        return ctx

    def _commit(self, machine: StateMachine, ctx: PromotionContext) -> PromotionContext:
        machine.begin(PipelineState.COMMITTED)
        automation = self.config.get('automation', {})
        decision = ctx.decision
        message = self.commit_message(ctx)

        result = self.git.commit(
            self.source_dir,
            [decision.descriptor_path],
            message,
            automation.get('name', ''),
            automation.get('email', ''),
        )
        if result.status == CommitStatus.FAILED:
            raise CollaboratorFailure("commit", result.output or "commit failed")

        if result.status == CommitStatus.NOOP:
            logger.info("Descriptor unchanged; nothing to commit")
        else:
            logger.info(f"Committed {decision.descriptor_path} as {result.sha}")
            remote = self.config.get('general', {}).get('remote', 'origin')
            pushed = self.git.push(self.source_dir, remote=remote, branch=ctx.branch)
            if not pushed.success:
                cause = pushed.output
                if pushed.conflict:
                    cause = f"push rejected, remote {ctx.branch} has advanced: {pushed.output}"
                raise CollaboratorFailure("git push", cause)

        ctx = replace(ctx, commit_created=result.status == CommitStatus.COMMITTED)
        machine.advance(PipelineState.COMMITTED)
        return ctx

    def _deploy(self, machine: StateMachine, ctx: PromotionContext) -> PromotionContext:
        machine.begin(PipelineState.DEPLOYED)
        decision = ctx.decision
        descriptor = str(self.store.resolve(decision.descriptor_path))
        result = self.deployer.apply(descriptor, decision.credential_set_id)
        if not result.success:
            raise CollaboratorFailure("deploy apply", result.cause or "apply failed")

        resource = decision.resource or self.config.get('deploy', {}).get('resource', 'app')
        result = self.deployer.wait_for_rollout(resource, decision.namespace, decision.credential_set_id)
        if not result.success:
            raise CollaboratorFailure("rollout", result.cause or "rollout did not complete")
        machine.advance(PipelineState.DEPLOYED)
        return ctx

    # -- outcomes ------------------------------------------------------------

    def _outcome(
        self,
        machine: StateMachine,
        ctx: PromotionContext,
        reason: str,
        error_type: Optional[str] = None,
    ) -> PromotionOutcome:
        logger.info(f"Run finished: {machine.state.value} ({reason})")
        return PromotionOutcome(
            state=machine.state,
            reason=reason,
            error_type=error_type,
            history=list(machine.history),
            context=ctx,
        )

    def _failed(
        self,
        machine: StateMachine,
        ctx: PromotionContext,
        cause: str,
        error_type: str,
        step: Optional[str] = None,
    ) -> PromotionOutcome:
        failed_at = machine.failure_point
        logger.error(f"Failed during {failed_at.value}: {cause}")
        machine.advance(PipelineState.FAILED)
        return PromotionOutcome(
            state=PipelineState.FAILED,
            reason=f"Failed during {failed_at.value}" + (f" ({step})" if step else ""),
            failed_at=failed_at,
            cause=cause,
            error_type=error_type,
            history=list(machine.history),
            context=ctx,
        )
