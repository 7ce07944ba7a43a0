#!/usr/bin/env python3

import click

from branchpromote.commands.config import config_cmd
from branchpromote.commands.promote import (
    guard_cmd,
    plan_cmd,
    resolve_cmd,
    rewrite_cmd,
    rules_cmd,
    run_cmd,
    tag_cmd,
)


@click.group()
@click.version_option(package_name='branchpromote')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='Config file (default: $BRANCHPROMOTE_CONFIG, ./.branchpromote.*, ~/.branchpromote/)')
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, config_path, verbose):
    """branchpromote - Branch-driven deployment promotion for CI pipelines.

    Maps the building branch to a target environment, tags the artifact,
    rewrites the environment's deployment descriptor, and keeps the
    pipeline from re-triggering on its own descriptor commits.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['verbose'] = verbose


# Core commands (flat, top-level)
cli.add_command(run_cmd)
cli.add_command(plan_cmd)
cli.add_command(resolve_cmd)
cli.add_command(tag_cmd)
cli.add_command(rewrite_cmd)
cli.add_command(guard_cmd)
cli.add_command(rules_cmd)

# Command groups
cli.add_command(config_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
