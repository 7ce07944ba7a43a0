import click
import json
from pathlib import Path

from ..cli_utils import get_config, standard_command
from ..config import get_config_path, get_default_config, save_config


@click.group("config")
def config_cmd():
    """Configuration management commands."""
    pass


@config_cmd.command("show")
@click.option("--pretty", is_flag=True, help="Display as formatted JSON instead of single-line JSONL")
@click.option("--path", is_flag=True, help="Show the config file path being used")
@click.pass_context
@standard_command
def show_config(ctx, pretty, path):
    """Show the current configuration with all merges applied.

    By default, outputs single-line JSON (JSONL format).
    Use --pretty for human-readable formatted output.
    Use --path to see which config file is being used.
    """
    if path:
        config_path = ctx.obj.get('config_path') or get_config_path()
        print(json.dumps({"config_path": str(config_path)}))
        return

    config = get_config(ctx)

    if pretty:
        print(json.dumps(config, indent=2, ensure_ascii=False))
    else:
        print(json.dumps(config, ensure_ascii=False))


@config_cmd.command("init")
@click.argument("destination", required=False, type=click.Path(dir_okay=False))
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@standard_command
def init_config(destination, force):
    """Write the default configuration.

    DESTINATION defaults to ./.branchpromote.json so the rule table can be
    committed next to the pipeline definition. The suffix picks the format
    (.json, .toml, .yaml).
    """
    target = Path(destination) if destination else Path.cwd() / '.branchpromote.json'
    if target.exists() and not force:
        raise click.ClickException(f"{target} already exists (use --force to overwrite)")
    written = save_config(get_default_config(), target)
    print(json.dumps({"config_path": str(written)}))
