"""Create users table

Learn: Users carry their display settings (timezone, location, last
display state) and the Spotify credential used by the music poller.

Revision ID: 3f1c2a9d4b7e
Revises:
Create Date: 2026-10-19 09:12:40.118204
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d4b7e'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False),
        sa.Column("is_visible", sa.Boolean(), nullable=False),
        sa.Column("can_be_modified", sa.Boolean(), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("location_name", sa.String(length=200), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("last_state", sa.JSON(), nullable=True),
        sa.Column("spotify_access_token", sa.Text(), nullable=True),
        sa.Column("spotify_refresh_token", sa.Text(), nullable=True),
        sa.Column("spotify_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("spotify_scope", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    # Logins look users up case-insensitively
    op.create_index("ix_users_name_lower", "users", [sa.text("lower(name)")])


def downgrade() -> None:
    op.drop_index("ix_users_name_lower", table_name="users")
    op.drop_table("users")
