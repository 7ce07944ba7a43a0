"""
Promotion commands for branchpromote.

Each command is a thin wrapper over the domain functions or the
PromotionService so the same logic runs in a Jenkinsfile step, a
GitHub Actions job, or a developer's shell.
"""

import sys
from pathlib import Path

import click

from ..cli_utils import add_common_options, echo_result, get_config, standard_command
from ..domain.artifact import artifact_tag
from ..domain.descriptor import current_image, rewrite
from ..domain.policy import rules_from_config, shadowed_rules
from ..exit_codes import DATA_ERROR, get_exit_code_for_outcome
from ..infra.descriptor_store import DescriptorStore
from ..infra.git_client import GitClient
from ..output import emit
from ..services.loop_guard import LoopGuard
from ..services.promotion_service import PromotionService


@click.command('resolve')
@add_common_options('branch')
@click.pass_context
@standard_command
def resolve_cmd(ctx, branch):
    """Print the branch this build is promoting.

    Checks --branch, then the configured CI environment variables
    (BRANCH_NAME, GIT_BRANCH, ...), then falls back to the default branch.
    'origin/' and 'refs/heads/' qualifiers are stripped.
    """
    service = PromotionService(get_config(ctx))
    echo_result({'branch': service.resolve(branch)})


@click.command('plan')
@add_common_options('branch', 'build_number')
@click.pass_context
@standard_command
def plan_cmd(ctx, branch, build_number):
    """Show where this build would be promoted, without running anything.

    Examples:

    \b
        branchpromote plan --branch release/2.4 --build-number 42
        BRANCH_NAME=hotfix/urgent-fix BUILD_NUMBER=13 branchpromote plan
    """
    service = PromotionService(get_config(ctx))
    echo_result(service.plan(branch, build_number))


@click.command('tag')
@click.argument('branch')
@click.argument('sequence', type=int)
@standard_command
def tag_cmd(branch, sequence):
    """Print the artifact tag for BRANCH and build SEQUENCE.

    \b
        branchpromote tag release/v1 42    # release-v1-42
    """
    click.echo(artifact_tag(branch, sequence))


@click.command('rewrite')
@click.argument('descriptor', type=click.Path(exists=True, dir_okay=False))
@click.argument('image')
@add_common_options('dry_run')
@standard_command
def rewrite_cmd(descriptor, image, dry_run):
    """Point the image line of DESCRIPTOR at IMAGE.

    With --dry-run the rewritten descriptor is printed instead of saved.
    """
    path = Path(descriptor)
    store = DescriptorStore(str(path.parent))
    content = store.read(path.name)
    updated = rewrite(content, image)

    if dry_run:
        click.echo(updated, nl=False)
        return

    changed = store.write(path.name, updated)
    echo_result({
        'descriptor': str(path),
        'previous_image': current_image(content),
        'image': image,
        'changed': changed,
    })


@click.command('guard')
@click.option('--ref', default='HEAD', show_default=True, help='Ref whose last commit is checked')
@click.pass_context
@standard_command
def guard_cmd(ctx, ref):
    """Check whether the last commit came from the automation itself.

    Prints the verdict as JSON. The exit code is 0 either way, so
    pipelines branch on the 'skip' field.
    """
    config = get_config(ctx)
    git = GitClient(timeout=config.get('git', {}).get('timeout_seconds', 60))
    guard = LoopGuard(
        git,
        config.get('automation', {}).get('email', ''),
        repo_path=config.get('general', {}).get('source_dir', '.'),
    )
    echo_result(guard.check(ref))


@click.command('rules')
@add_common_options('pretty')
@click.option('--check', is_flag=True, help='Report exact rules shadowed by earlier patterns')
@click.pass_context
@standard_command
def rules_cmd(ctx, pretty, check):
    """List the promotion rules in evaluation order.

    The first matching rule wins. With --check, exact-name rules that an
    earlier pattern already captures are reported and the command exits
    non-zero.
    """
    rules = rules_from_config(get_config(ctx))

    if check:
        shadowed = shadowed_rules(rules)
        emit(shadowed, pretty=pretty, title="Shadowed rules")
        if shadowed:
            sys.exit(DATA_ERROR)
        return

    rows = [dict(order=i, **rule.to_dict()) for i, rule in enumerate(rules)]
    emit(rows, pretty=pretty, title="Promotion rules")


@click.command('run')
@add_common_options('branch', 'build_number')
@click.pass_context
@standard_command
def run_cmd(ctx, branch, build_number):
    """Run the full promotion for this build.

    Resolves the branch, skips automation-authored commits, applies the
    promotion policy, then builds, scans, packages, pushes the image,
    rewrites and commits the descriptor, and deploys.

    The outcome is printed as JSON. Exit status: 0 for deployed or
    skipped, 72 for a branch rejected by policy, non-zero otherwise.
    """
    service = PromotionService(get_config(ctx))
    outcome = service.run(branch=branch, sequence_number=build_number)
    echo_result(outcome)
    sys.exit(get_exit_code_for_outcome(outcome))
