"""Create activity, join_leave, activity_stats and role_metrics tables

Revision ID: 5c2e8d41a7b3
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5c2e8d41a7b3"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "activity",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.BigInteger, nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column(
            "last_activity_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_member_id", "activity", ["member_id"], unique=True)

    op.create_table(
        "join_leave",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("member_id", sa.BigInteger, nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("left_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejoined", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("rejoin_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_join_leave_member_id", "join_leave", ["member_id"], unique=True)

    op.create_table(
        "activity_stats",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("windows", postgresql.JSONB, nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )

    op.create_table(
        "role_metrics",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("day_key", sa.Date, nullable=False, unique=True),
        sa.Column("onboarded", sa.Integer, nullable=False, server_default="0"),
        sa.Column("community_games", postgresql.JSONB, nullable=False),
        sa.Column("rec_games", postgresql.JSONB, nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )


def downgrade() -> None:
    op.drop_table("role_metrics")
    op.drop_table("activity_stats")
    op.drop_index("ix_join_leave_member_id", table_name="join_leave")
    op.drop_table("join_leave")
    op.drop_index("ix_activity_member_id", table_name="activity")
    op.drop_table("activity")
