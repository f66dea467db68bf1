# mypy: ignore-errors
"""
Migration Alembic: tables des brouillons et des versions de contenu.

`content_versions` porte la contrainte d'unicité (entity_id, version_number) qui
détecte les courses de numérotation.
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Crée `content_entities` et `content_versions`."""
    op.create_table(
        "content_entities",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("full_text", sa.Text(), nullable=False),
        sa.Column("high_yield", sa.Text(), nullable=False),
        sa.Column("deep_dive", sa.Text(), nullable=False),
        sa.Column("learning_objectives", sa.JSON(), nullable=False),
        sa.Column("source_pack", sa.JSON(), nullable=False),
        sa.Column("sources", sa.JSON(), nullable=False),
        sa.Column("warnings", sa.JSON(), nullable=False),
        sa.Column("last_model_used", sa.String(length=128), nullable=True),
        sa.Column("last_cost", sa.Float(), nullable=True),
        sa.Column("specialty", sa.String(length=255), nullable=True),
        sa.Column("parent_section", sa.String(length=255), nullable=True),
        sa.Column("review_status", sa.String(length=32), nullable=False),
        sa.Column("updated_at", sa.String(length=64), nullable=True),
    )
    op.create_table(
        "content_versions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("ai_model", sa.String(length=128), nullable=True),
        sa.Column("ai_confidence", sa.String(length=16), nullable=True),
        sa.Column("ai_cost", sa.Float(), nullable=True),
        sa.Column("change_reason", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("is_current", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("entity_id", "version_number", name="uq_entity_version_number"),
    )
    op.create_index("ix_content_versions_entity_id", "content_versions", ["entity_id"])


def downgrade() -> None:
    """Supprime les tables de contenu."""
    op.drop_index("ix_content_versions_entity_id", table_name="content_versions")
    op.drop_table("content_versions")
    op.drop_table("content_entities")
