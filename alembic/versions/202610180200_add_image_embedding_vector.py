"""Add pgvector-backed similarity search on images.

Revision ID: 202610180200
Revises: 202610180100
Create Date: 2026-10-18 02:00:00.000000
"""

from typing import Sequence, Union

from alembic import op


# revision identifiers, used by Alembic.
revision: str = "202610180200"
down_revision: Union[str, None] = "202610180100"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name != "postgresql":
        return

    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    op.execute(
        """
        DO $$
        DECLARE
            embedding_dim integer;
        BEGIN
            SELECT COALESCE(MAX(array_length(embedding, 1)), 0)
            INTO embedding_dim
            FROM images
            WHERE embedding IS NOT NULL;

            IF embedding_dim <= 0 THEN
                -- all-MiniLM-L6-v2 output size.
                embedding_dim := 384;
            END IF;

            EXECUTE 'ALTER TABLE images ADD COLUMN IF NOT EXISTS embedding_vec vector';

            EXECUTE format(
                'ALTER TABLE images
                 ALTER COLUMN embedding_vec TYPE vector(%s)
                 USING CASE
                     WHEN embedding_vec IS NULL THEN NULL
                     ELSE embedding_vec::vector(%s)
                 END',
                embedding_dim,
                embedding_dim
            );

            EXECUTE format(
                'UPDATE images
                 SET embedding_vec = embedding::vector(%s)
                 WHERE embedding IS NOT NULL
                   AND embedding_vec IS NULL
                   AND array_length(embedding, 1) = %s',
                embedding_dim,
                embedding_dim
            );

            EXECUTE format(
                'CREATE OR REPLACE FUNCTION sync_images_embedding_vector()
                 RETURNS trigger AS $body$
                 BEGIN
                     IF NEW.embedding IS NULL THEN
                         NEW.embedding_vec := NULL;
                     ELSIF array_length(NEW.embedding, 1) = %s THEN
                         NEW.embedding_vec := NEW.embedding::vector(%s);
                     ELSE
                         NEW.embedding_vec := NULL;
                     END IF;
                     RETURN NEW;
                 END;
                 $body$ LANGUAGE plpgsql',
                embedding_dim,
                embedding_dim
            );

            EXECUTE 'DROP TRIGGER IF EXISTS trg_sync_images_embedding_vector ON images';
            EXECUTE
                'CREATE TRIGGER trg_sync_images_embedding_vector
                 BEFORE INSERT OR UPDATE OF embedding
                 ON images
                 FOR EACH ROW
                 EXECUTE FUNCTION sync_images_embedding_vector()';

            BEGIN
                EXECUTE
                    'CREATE INDEX IF NOT EXISTS idx_images_embedding_vec_hnsw
                     ON images USING hnsw (embedding_vec vector_cosine_ops)';
            EXCEPTION
                WHEN undefined_object OR feature_not_supported OR invalid_parameter_value THEN
                    EXECUTE
                        'CREATE INDEX IF NOT EXISTS idx_images_embedding_vec_ivfflat
                         ON images USING ivfflat (embedding_vec vector_cosine_ops) WITH (lists = 100)';
            END;
        END $$;
        """
    )

    # Same matcher contract as PgVectorMatcher, callable from SQL clients.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION match_images(
            query_embedding vector,
            match_threshold float,
            match_count int
        )
        RETURNS TABLE (id integer, similarity float)
        LANGUAGE sql STABLE
        AS $$
            SELECT images.id, 1 - (images.embedding_vec <=> query_embedding) AS similarity
            FROM images
            WHERE images.embedding_vec IS NOT NULL
              AND 1 - (images.embedding_vec <=> query_embedding) >= match_threshold
            ORDER BY images.embedding_vec <=> query_embedding, images.id
            LIMIT match_count;
        $$
        """
    )


def downgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name != "postgresql":
        return

    op.execute("DROP FUNCTION IF EXISTS match_images(vector, float, int)")
    op.execute("DROP INDEX IF EXISTS idx_images_embedding_vec_hnsw")
    op.execute("DROP INDEX IF EXISTS idx_images_embedding_vec_ivfflat")
    op.execute("DROP TRIGGER IF EXISTS trg_sync_images_embedding_vector ON images")
    op.execute("DROP FUNCTION IF EXISTS sync_images_embedding_vector()")
    op.execute("ALTER TABLE images DROP COLUMN IF EXISTS embedding_vec")
