"""Initial schema: users and the three token tables

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _token_table(name: str, marker: str) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(marker, sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_hash", name=f"uq_{name}_token_hash"),
    )
    op.create_index(f"ix_{name}_user_id", name, ["user_id"])
    # Outstanding tokens per user: revoke-all / invalidate-all.
    op.create_index(
        f"ix_{name}_user_outstanding",
        name,
        ["user_id"],
        postgresql_where=sa.text(f"{marker} IS NULL"),
    )
    op.create_index(f"ix_{name}_expires_at", name, ["expires_at"])


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(128), nullable=False),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deletion_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    # Cleanup job scans only accounts with a pending deletion.
    op.create_index(
        "ix_users_deletion_scheduled_at",
        "users",
        ["deletion_scheduled_at"],
        postgresql_where=sa.text("deletion_scheduled_at IS NOT NULL"),
    )

    # --- tokens ---
    _token_table("auth_tokens", "revoked_at")
    _token_table("password_resets", "used_at")
    _token_table("email_verifications", "used_at")


def downgrade() -> None:
    op.drop_table("email_verifications")
    op.drop_table("password_resets")
    op.drop_table("auth_tokens")
    op.drop_index("ix_users_deletion_scheduled_at", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
