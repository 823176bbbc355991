import json
import sys

import click
from rich.console import Console
from rich.json import JSON
from rich.markup import escape

from multipass_reconciler.config import ValidationLimits, load_settings
from multipass_reconciler.models import VmRecord
from multipass_reconciler.validation import lint_spec

from .utils import build_reconciler, handle_async_command, load_spec

console = Console()


def spec_options(func):
    """Flags shared by commands that take a VmSpec."""
    options = [
        click.option('--file', '-f', 'spec_file', type=click.Path(exists=True, dir_okay=False),
                     help='YAML file with the instance spec.'),
        click.option('--name', help='Instance name.'),
        click.option('--image', help="Image to launch, e.g. 'ubuntu' or '22.04'."),
        click.option('--cpu', help='Number of CPUs.'),
        click.option('--memory', help="Memory size, e.g. '2G'."),
        click.option('--disk', help="Disk size, e.g. '10G'."),
        click.option('--cloud-init', 'cloud_init', help='Path to a cloud-init YAML file.'),
        click.option('--timeout', help="Launch timeout, e.g. '5m'."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _spec_overrides(name, image, cpu, memory, disk, cloud_init, timeout):
    return {
        "name": name,
        "image": image,
        "cpu": cpu,
        "memory": memory,
        "disk": disk,
        "cloud_init": cloud_init,
        "timeout": timeout,
    }


def _print_record(record: VmRecord, json_output: bool) -> None:
    if json_output:
        console.print(JSON(json.dumps(record.summary())))
        return
    console.print(f"[cyan]Name[/cyan]: {record.name}")
    console.print(f"[cyan]State[/cyan]: {record.state.value}")
    console.print(f"[cyan]IPv4[/cyan]: {', '.join(record.ipv4) or '-'}")
    console.print(f"[cyan]Release[/cyan]: {record.release or '-'}")


@click.command()
@spec_options
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@click.pass_context
@handle_async_command
async def create(ctx, spec_file, name, image, cpu, memory, disk, cloud_init, timeout, json_output) -> None:
    """Launches a new instance."""
    spec = load_spec(spec_file, _spec_overrides(name, image, cpu, memory, disk, cloud_init, timeout))
    reconciler = build_reconciler(ctx.obj.get('BINARY'))
    record = await reconciler.create(spec)
    if not json_output:
        console.print(f"[green]✅ Instance '{record.name}' created[/green]")
    _print_record(record, json_output)


@click.command()
@click.argument('name')
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@click.pass_context
@handle_async_command
async def show(ctx, name: str, json_output: bool) -> None:
    """Shows the current state of one instance."""
    reconciler = build_reconciler(ctx.obj.get('BINARY'))
    query = await reconciler.registry.query(name)
    _print_record(query.instance, json_output)


@click.command()
@click.option('--json', 'json_output', is_flag=True, help='Output in JSON format.')
@click.pass_context
@handle_async_command
async def list_instances(ctx, json_output: bool) -> None:
    """Lists all instances."""
    reconciler = build_reconciler(ctx.obj.get('BINARY'))
    query = await reconciler.registry.query()
    if json_output:
        console.print(JSON(json.dumps(query.to_dict())))
        return

    console.print("[bold blue]Multipass Instances[/bold blue]")
    if not query.instances:
        console.print("No instances found.")
        return
    for record in query.instances:
        ips = ', '.join(record.ipv4) or '-'
        console.print(f"[cyan]{record.name}[/cyan]: {record.state.value} ({ips})")


@click.command()
@click.argument('name')
@click.pass_context
@handle_async_command
async def delete(ctx, name: str) -> None:
    """Deletes and purges an instance."""
    reconciler = build_reconciler(ctx.obj.get('BINARY'))
    await reconciler.delete(name)
    console.print(f"[green]✅ Instance '{name}' deleted[/green]")


def _power_command(verb: str, help_text: str):
    @click.command(name=verb, help=help_text)
    @click.argument('name')
    @click.pass_context
    @handle_async_command
    async def command(ctx, name: str) -> None:
        reconciler = build_reconciler(ctx.obj.get('BINARY'))
        await getattr(reconciler, verb)(name)
        console.print(f"[green]✅ {verb} {name}: done[/green]")
    return command


start = _power_command('start', 'Starts a stopped or suspended instance.')
stop = _power_command('stop', 'Stops a running instance.')
restart = _power_command('restart', 'Restarts an instance.')
suspend = _power_command('suspend', 'Suspends a running instance.')


@click.command()
@spec_options
def validate(spec_file, name, image, cpu, memory, disk, cloud_init, timeout) -> None:
    """Checks an instance spec without launching anything."""
    spec = load_spec(spec_file, _spec_overrides(name, image, cpu, memory, disk, cloud_init, timeout))
    errors = lint_spec(spec, ValidationLimits.from_settings(load_settings()))
    if not errors:
        console.print(f"[green]✅ Spec for '{spec.name}' is valid[/green]")
        return

    console.print(f"[red]Spec has {len(errors)} problem(s):[/red]")
    for error in errors:
        console.print(f"  [yellow]{error.field}[/yellow]: {escape(error.reason)}")
    sys.exit(1)
