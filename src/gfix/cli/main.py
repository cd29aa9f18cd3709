"""Main CLI entry point for GFIX package."""

import click

from .build import build, refseqs
from .tracks import info, names, query, verify


@click.group()
@click.version_option(package_name='gfix')
@click.pass_context
def main(ctx):
    """GFIX - Genomic Feature IndeXer

    Builds chunked, interval-indexed feature tracks from annotation
    databases and queries them.
    """
    ctx.ensure_object(dict)


# Add subcommands
main.add_command(refseqs, name='refseqs')
main.add_command(build, name='build')
main.add_command(query, name='query')
main.add_command(names, name='names')
main.add_command(verify, name='verify')
main.add_command(info, name='info')


@main.command()
def version():
    """Show version information."""
    from ..__version__ import __version__
    click.echo(f"gfix version {__version__}")


if __name__ == '__main__':
    main()
