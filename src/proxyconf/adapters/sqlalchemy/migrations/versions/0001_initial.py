"""Create stream and certificate tables.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PROVIDERS = sa.Enum("LETSENCRYPT", "OTHER", name="certificateprovider", native_enum=False)


def upgrade() -> None:
    op.create_table(
        "certificate",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("provider", PROVIDERS, nullable=False),
        sa.Column("nice_name", sa.String(), nullable=False),
        sa.Column("domain_names", sa.JSON(), nullable=False),
        sa.Column("expires_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_certificate")),
    )
    op.create_table(
        "stream",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("owner_id", sa.Integer(), nullable=False),
        sa.Column("incoming_port", sa.Integer(), nullable=False),
        sa.Column("forwarding_host", sa.String(length=255), nullable=False),
        sa.Column("forwarding_port", sa.Integer(), nullable=False),
        sa.Column("tcp_forwarding", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("udp_forwarding", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("certificate_id", sa.Integer(), nullable=True),
        sa.Column("enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("created_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_on", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["certificate_id"],
            ["certificate.id"],
            name=op.f("fk_stream_certificate_id_certificate"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_stream")),
    )
    with op.batch_alter_table("stream", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_stream_owner_id"), ["owner_id"], unique=False)
        batch_op.create_index(
            batch_op.f("ix_stream_incoming_port"), ["incoming_port"], unique=False
        )


def downgrade() -> None:
    with op.batch_alter_table("stream", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_stream_incoming_port"))
        batch_op.drop_index(batch_op.f("ix_stream_owner_id"))
    op.drop_table("stream")
    op.drop_table("certificate")
