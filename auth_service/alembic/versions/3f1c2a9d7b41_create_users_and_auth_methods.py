"""Create ``users`` and ``auth_methods`` tables.

Revision ID: 3f1c2a9d7b41
Revises:
Create Date: 2026-10-19 14:30:00.000000

``users`` holds local credentials and verification state; ``auth_methods``
holds the external identities linked to a user, unique per provider.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "3f1c2a9d7b41"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

USERS = "users"
AUTH_METHODS = "auth_methods"


def upgrade() -> None:
    """Create both tables with their unique and lookup indexes."""
    op.create_table(
        USERS,
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=True),
        sa.Column("verification_token", sa.String(length=64), nullable=True),
        sa.Column("verification_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("profile_image", sa.String(length=2048), nullable=True),
        sa.Column("bio", sa.String(length=160), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_id"), USERS, ["id"], unique=False)
    op.create_index(op.f("ix_users_username"), USERS, ["username"], unique=True)
    op.create_index(op.f("ix_users_email"), USERS, ["email"], unique=True)
    op.create_index(
        op.f("ix_users_verification_token"), USERS, ["verification_token"], unique=False
    )

    op.create_table(
        AUTH_METHODS,
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("provider_id", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "provider_id", name="uq_auth_methods_provider"),
    )
    op.create_index(op.f("ix_auth_methods_id"), AUTH_METHODS, ["id"], unique=False)
    op.create_index(op.f("ix_auth_methods_user_id"), AUTH_METHODS, ["user_id"], unique=False)


def downgrade() -> None:
    """Drop indexes and tables in reverse order of creation."""
    op.drop_index(op.f("ix_auth_methods_user_id"), table_name=AUTH_METHODS)
    op.drop_index(op.f("ix_auth_methods_id"), table_name=AUTH_METHODS)
    op.drop_table(AUTH_METHODS)
    op.drop_index(op.f("ix_users_verification_token"), table_name=USERS)
    op.drop_index(op.f("ix_users_email"), table_name=USERS)
    op.drop_index(op.f("ix_users_username"), table_name=USERS)
    op.drop_index(op.f("ix_users_id"), table_name=USERS)
    op.drop_table(USERS)
