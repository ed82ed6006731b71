"""Galleria CLI entry point with lazy command registration."""

from __future__ import annotations

import click

_COMMANDS_REGISTERED = False


def _register_commands_once() -> None:
    global _COMMANDS_REGISTERED
    if _COMMANDS_REGISTERED:
        return

    from .commands import embeddings, inspect

    cli.add_command(embeddings.build_embeddings_command, name="build-embeddings")
    cli.add_command(inspect.show_config_command, name="show-config")

    _COMMANDS_REGISTERED = True


class _LazyCLIGroup(click.Group):
    def list_commands(self, ctx):
        _register_commands_once()
        return super().list_commands(ctx)

    def get_command(self, ctx, cmd_name):
        _register_commands_once()
        return super().get_command(ctx, cmd_name)


@click.group(cls=_LazyCLIGroup)
def cli():
    """Galleria CLI for maintenance tasks."""
    pass


if __name__ == "__main__":
    cli()
