"""Helpers shared across CLI commands."""

from __future__ import annotations

import json
import sys
from collections.abc import Mapping, Sequence

import typer

from .formatters import create_formatter

SYSTEM_EXIT_CODE = 1
VALIDATION_EXIT_CODE = 2


def render_rows(ctx: typer.Context, rows: Sequence[Mapping[str, object]]) -> None:
    """Render ``rows`` with the formatter selected on the root command."""

    ctx.ensure_object(dict)
    options = ctx.obj or {}
    formatter = create_formatter(str(options.get("format", "table")), no_color=bool(options.get("no_color", False)))
    formatter.render(rows, stream=sys.stdout)


def emit_error(message: str, code: str, *, details: Mapping[str, object] | None = None) -> None:
    """Print a structured error payload to stderr."""

    payload: dict[str, object] = {"code": code, "message": message}
    if details:
        payload["details"] = {k: v if isinstance(v, (str, int, float, bool)) or v is None else str(v) for k, v in details.items()}
    typer.echo(json.dumps(payload, ensure_ascii=False, default=str), err=True)


__all__ = ["SYSTEM_EXIT_CODE", "VALIDATION_EXIT_CODE", "emit_error", "render_rows"]
