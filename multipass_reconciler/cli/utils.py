import asyncio
import functools
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import yaml
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape

from multipass_reconciler.config import load_settings
from multipass_reconciler.errors import ReconcilerError
from multipass_reconciler.models import VmSpec
from multipass_reconciler.reconciler import InstanceReconciler

console = Console()


def handle_async_command(async_func):
    """Decorator to handle async CLI commands."""
    @functools.wraps(async_func)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(async_func(*args, **kwargs))
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(1)
        except ReconcilerError as e:
            console.print(f"[red]Error ({e.category.value}): {escape(e.message)}[/red]")
            sys.exit(1)
        except Exception as e:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
            sys.exit(1)
    return wrapper


def build_reconciler(binary_path: Optional[str] = None) -> InstanceReconciler:
    """Reconciler configured from MPR_* settings, with an optional binary override."""
    settings = load_settings()
    if binary_path:
        settings.BINARY_PATH = binary_path
    return InstanceReconciler.from_settings(settings)


def load_spec(path: Optional[str], overrides: Dict[str, Any]) -> VmSpec:
    """Build a VmSpec from an optional YAML file, with non-empty flags taking precedence."""
    data: Dict[str, Any] = {}
    if path:
        loaded = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise click.ClickException(f"{path} must contain a mapping of spec fields")
        data.update(loaded)
    data.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return VmSpec.model_validate(data)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'spec'}: {err['msg']}" for err in e.errors()
        )
        raise click.ClickException(f"invalid instance spec: {problems}") from e
