import click

from multipass_reconciler.utils.logging import setup_logging

from .instances import (
    create,
    delete,
    list_instances,
    restart,
    show,
    start,
    stop,
    suspend,
    validate,
)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enables verbose mode.')
@click.option('--quiet', '-q', is_flag=True, help='Enables quiet mode.')
@click.option('--binary', envvar='MPR_BINARY_PATH', default=None, help='Path to the multipass binary.')
@click.pass_context
def app(ctx, verbose, quiet, binary):
    """
    Multipass instance reconciler CLI.
    """
    ctx.ensure_object(dict)
    ctx.obj['VERBOSE'] = verbose
    ctx.obj['QUIET'] = quiet
    ctx.obj['BINARY'] = binary

    if verbose:
        setup_logging(level='DEBUG')
    elif quiet:
        setup_logging(level='ERROR')
    else:
        setup_logging()

# Add subcommands
app.add_command(create)
app.add_command(show)
app.add_command(list_instances, name='list')
app.add_command(delete)
app.add_command(start)
app.add_command(stop)
app.add_command(restart)
app.add_command(suspend)
app.add_command(validate)

if __name__ == '__main__':
    app()
