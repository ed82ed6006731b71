"""Image embedding rebuild command."""

from __future__ import annotations

from typing import Optional

import click

from galleria.cli.base import CliCommand
from galleria.embedding_index import rebuild_image_embeddings
from galleria.embeddings import get_embedding_provider


@click.command(name="build-embeddings")
@click.option("--image-id", default=None, type=int, help="Optional single image ID to embed")
@click.option("--limit", default=None, type=int, help="Maximum number of images to embed")
@click.option("--offset", default=0, type=int, help="Offset into the image set")
@click.option(
    "--refresh/--no-refresh",
    default=False,
    help="When true, re-embed every image; default mode only embeds images without an embedding",
)
@click.option("--provider", "provider_type", default=None, help="Embedding provider (minilm or clip)")
def build_embeddings_command(
    image_id: Optional[int],
    limit: Optional[int],
    offset: int,
    refresh: bool,
    provider_type: Optional[str],
):
    """Compute search embeddings for gallery images."""
    cmd = BuildEmbeddingsCommand(
        image_id=image_id,
        limit=limit,
        offset=offset,
        refresh=refresh,
        provider_type=provider_type,
    )
    cmd.run()


class BuildEmbeddingsCommand(CliCommand):
    """Command to (re)compute image embeddings."""

    def __init__(
        self,
        *,
        image_id: Optional[int],
        limit: Optional[int],
        offset: int,
        refresh: bool,
        provider_type: Optional[str],
    ):
        super().__init__()
        self.image_id = image_id
        self.limit = limit
        self.offset = offset
        self.refresh = refresh
        self.provider_type = provider_type

    def run(self):
        try:
            provider = get_embedding_provider(self.provider_type)
        except ValueError as exc:
            raise click.ClickException(str(exc))

        self.setup_db()
        try:
            click.echo(
                "Building image embeddings "
                f"(model={provider.model_name}, image_id={self.image_id or '-'}, "
                f"offset={self.offset}, limit={self.limit or '-'}, "
                f"refresh={bool(self.refresh)})"
            )
            result = rebuild_image_embeddings(
                self.db,
                provider,
                image_id=self.image_id,
                limit=self.limit,
                offset=self.offset,
                refresh=self.refresh,
            )
            click.echo(
                "✓ Embedding rebuild complete: "
                f"processed={result['processed']} skipped={result['skipped']} failed={result['failed']}"
            )
            if result.get("errors"):
                click.echo("Errors:")
                for err in result["errors"][:20]:
                    click.echo(f"  - {err}")
                if len(result["errors"]) > 20:
                    click.echo(f"  ...and {len(result['errors']) - 20} more")
        finally:
            self.cleanup_db()
