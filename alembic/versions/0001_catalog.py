
"""Migração inicial: árvore de famílias (flattenTree) e seus embeddings."""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_catalog"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "flattenTree",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
        sa.Column("canonical_name", sa.String(255), nullable=True),
    )
    op.create_table(
        "flattenTree_embeddings",
        sa.Column("id", sa.Integer, sa.ForeignKey("flattenTree.id"), primary_key=True, autoincrement=False),
        sa.Column("model", sa.String(64), nullable=False),
        sa.Column("dims", sa.Integer, nullable=False),
        sa.Column("embedding_json", sa.Text(), nullable=False),
    )

def downgrade() -> None:
    op.drop_table("flattenTree_embeddings")
    op.drop_table("flattenTree")
