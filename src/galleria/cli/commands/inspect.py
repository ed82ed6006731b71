"""Configuration inspection command."""

import click

from galleria.settings import settings


@click.command(name="show-config")
def show_config_command():
    """Print the effective embedding and vector search configuration."""
    click.echo(f"environment: {settings.environment}")
    click.echo(f"database_url: {settings.database_url.split('@')[-1]}")
    for key, value in settings.embedding_config_audit().items():
        click.echo(f"{key}: {value}")
