"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import sys
import click
from functools import wraps
from typing import Any, Dict

from .config import configure_logging, load_config
from .exceptions import PromotionError
from .exit_codes import (
    INTERRUPTED,
    CommandError,
    get_exit_code_for_exception,
)
from .output import emit_error


def standard_command(func):
    """
    Decorator that provides standard CLI behavior:
    - Errors reported as JSON on stderr
    - Exit codes mapped from the exception type
    - Click exceptions passed through untouched
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            emit_error("Interrupted by user", type="KeyboardInterrupt")
            sys.exit(INTERRUPTED)
        except click.ClickException:
            raise
        except CommandError as e:
            emit_error(str(e), type=type(e).__name__)
            sys.exit(e.exit_code)
        except (PromotionError, OSError, ValueError) as e:
            emit_error(str(e), type=type(e).__name__)
            sys.exit(get_exit_code_for_exception(e))

    return wrapper


def get_config(ctx: click.Context) -> Dict[str, Any]:
    """Load configuration once per invocation and apply logging settings."""
    obj = ctx.ensure_object(dict)
    if 'config' not in obj:
        obj['config'] = load_config(obj.get('config_path'))
        configure_logging(obj['config'], verbose=obj.get('verbose', False))
    return obj['config']


# Standard options that many commands share
common_options = {
    'branch': click.option('--branch', '-b',
                           help='Branch to promote (default: CI environment variables)'),
    'build_number': click.option('--build-number', '-n',
                                 help='Build sequence number (default: $BUILD_NUMBER)'),
    'pretty': click.option('--pretty', is_flag=True,
                           help='Display as a formatted table'),
    'dry_run': click.option('--dry-run', is_flag=True,
                            help='Preview changes without saving'),
}


def add_common_options(*option_names):
    """
    Decorator to add common options to a command.

    Example:
        @add_common_options('branch', 'build_number')
        def my_command(branch, build_number):
            ...
    """
    def decorator(func):
        for name in reversed(option_names):
            if name in common_options:
                func = common_options[name](func)
        return func
    return decorator


def echo_result(result: Any) -> None:
    """Print a dict (or object with to_dict) as one JSON line."""
    data = result.to_dict() if hasattr(result, 'to_dict') else result
    click.echo(json.dumps(data, ensure_ascii=False))
