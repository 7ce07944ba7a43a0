"""
Output module for branchpromote.

Provides consistent output formatting across all commands:
- JSONL (default): Newline-delimited JSON for pipeline logs and piping
- Pretty: Human-readable tables using Rich

Usage:
    from branchpromote.output import emit, emit_error

    emit(rules, pretty=pretty)
    emit_error("Not found", type="not_found", context={"path": "/foo"})
"""

import json
import sys
from typing import Iterable, Any, Dict, Optional, List

from rich.console import Console
from rich.table import Table


def _as_dict(item: Any) -> Dict[str, Any]:
    if hasattr(item, 'to_dict'):
        return item.to_dict()
    if isinstance(item, dict):
        return item
    return {'value': str(item)}


def emit(
    items: Iterable[Any],
    pretty: bool = False,
    columns: Optional[List[str]] = None,
    title: Optional[str] = None
) -> None:
    """
    Emit items as JSONL or pretty table.

    Args:
        items: Items to emit (should have to_dict() method or be dicts)
        pretty: If True, render as table. If False, output JSONL
        columns: Column names for table (auto-detected if None)
        title: Optional table title
    """
    if pretty:
        _emit_table(items, columns, title)
    else:
        for item in items:
            print(json.dumps(_as_dict(item), ensure_ascii=False), flush=True)


def _emit_table(items: Iterable[Any], columns: Optional[List[str]] = None, title: Optional[str] = None) -> None:
    """Emit items as a Rich table."""
    rows = [_as_dict(item) for item in items]

    if not rows:
        print("No results found")
        return

    if not columns:
        columns = _auto_columns(rows)

    console = Console()
    table = Table(show_header=True, header_style="bold", title=title)

    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*[_format_value(row.get(col, '')) for col in columns])

    console.print(table)


def _auto_columns(rows: List[Dict]) -> List[str]:
    """Auto-detect columns from rows, first-seen order."""
    columns: List[str] = []
    for row in rows:
        for key in row.keys():
            if key not in columns:
                columns.append(key)
    return columns


def _format_value(value: Any, max_len: int = 60) -> str:
    """Format a value for table display."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    if isinstance(value, list):
        return ', '.join(str(v) for v in value)
    if isinstance(value, dict):
        return '{...}'

    s = str(value)
    if len(s) > max_len:
        return s[:max_len-3] + '...'
    return s


def emit_error(
    error: str,
    type: str = "error",
    context: Optional[Dict[str, Any]] = None
) -> None:
    """
    Emit error to stderr as JSON.

    Args:
        error: Error message
        type: Error type (e.g., "InvalidInput", "ConfigError")
        context: Additional context dict
    """
    obj = {
        'error': error,
        'type': type
    }
    if context:
        obj['context'] = context

    print(json.dumps(obj, ensure_ascii=False), file=sys.stderr, flush=True)
