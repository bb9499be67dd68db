"""Store image bytes in property_images

Revision ID: 8e4b27c5d0a3
Revises: 3c1f8a2d9b10
Create Date: 2026-01-14 18:02:37.540913

Adds the blob columns and lets staged uploads exist without a property.
Existing rows keep image_url until `primelist migrate-images` fills them.
"""

from typing import Sequence, Union

from alembic import op
from sqlalchemy import inspect
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "8e4b27c5d0a3"
down_revision: Union[str, Sequence[str], None] = "3c1f8a2d9b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    inspector = inspect(conn)
    columns = [c["name"] for c in inspector.get_columns("property_images")]

    with op.batch_alter_table("property_images") as batch_op:
        if "image_data" not in columns:
            batch_op.add_column(sa.Column("image_data", sa.LargeBinary(), nullable=True))
        if "mime_type" not in columns:
            batch_op.add_column(sa.Column("mime_type", sa.String(length=100), nullable=True))
        if "file_size" not in columns:
            batch_op.add_column(sa.Column("file_size", sa.Integer(), nullable=True))
        batch_op.alter_column("property_id", existing_type=sa.Integer(), nullable=True)
        batch_op.alter_column(
            "image_url", existing_type=sa.String(length=1000), nullable=True
        )
        batch_op.create_index("ix_property_images_property_id", ["property_id"])


def downgrade() -> None:
    with op.batch_alter_table("property_images") as batch_op:
        batch_op.drop_index("ix_property_images_property_id")
        batch_op.drop_column("file_size")
        batch_op.drop_column("mime_type")
        batch_op.drop_column("image_data")
