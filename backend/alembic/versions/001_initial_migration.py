"""Initial migration: create exchange, exchange_round, submission, played_game tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create exchange table
    op.create_table(
        "exchange",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("guild", sa.String(), nullable=False),
        sa.Column("jam_type", sa.String(), nullable=False),
        sa.Column("jam_link", sa.String(), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.String(), nullable=False),
        sa.Column("submission_channel", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("guild", "slug", name="uq_exchange_guild_slug"),
    )
    op.create_index("ix_exchange_guild", "exchange", ["guild"])

    # Create exchange_round table
    op.create_table(
        "exchange_round",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("exchange_id", sa.Integer(), nullable=False),
        sa.Column("submissions_start_at", sa.DateTime(), nullable=False),
        sa.Column("submissions_end_at", sa.DateTime(), nullable=False),
        sa.Column("games_per_member", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(), nullable=False, server_default="open"),
        sa.Column("assignments_sent_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["exchange_id"], ["exchange.id"], ondelete="CASCADE"),
        sa.CheckConstraint("games_per_member > 0", name="ck_round_games_per_member"),
        sa.CheckConstraint("submissions_end_at > submissions_start_at", name="ck_round_window"),
    )
    op.create_index("ix_exchange_round_exchange_id", "exchange_round", ["exchange_id"])

    # Create submission table - one entry per member per round
    op.create_table(
        "submission",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("round_id", sa.Integer(), nullable=False),
        sa.Column("link", sa.String(), nullable=False),
        sa.Column("submitter", sa.String(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["round_id"], ["exchange_round.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("round_id", "link", name="uq_submission_round_link"),
        sa.UniqueConstraint("round_id", "submitter", name="uq_submission_round_submitter"),
    )
    op.create_index("ix_submission_round_id", "submission", ["round_id"])
    op.create_index("ix_submission_submitter", "submission", ["submitter"])

    # Create played_game table - exchange-wide play history
    op.create_table(
        "played_game",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("exchange_id", sa.Integer(), nullable=False),
        sa.Column("link", sa.String(), nullable=False),
        sa.Column("member", sa.String(), nullable=False),
        sa.Column("is_manual", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("round_id", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["exchange_id"], ["exchange.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["round_id"], ["exchange_round.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("exchange_id", "link", "member", name="uq_played_game_link_member"),
    )
    op.create_index("ix_played_game_exchange_id", "played_game", ["exchange_id"])
    op.create_index("ix_played_game_member", "played_game", ["member"])
    op.create_index("ix_played_game_round_id", "played_game", ["round_id"])


def downgrade() -> None:
    op.drop_index("ix_played_game_round_id", table_name="played_game")
    op.drop_index("ix_played_game_member", table_name="played_game")
    op.drop_index("ix_played_game_exchange_id", table_name="played_game")
    op.drop_table("played_game")

    op.drop_index("ix_submission_submitter", table_name="submission")
    op.drop_index("ix_submission_round_id", table_name="submission")
    op.drop_table("submission")

    op.drop_index("ix_exchange_round_exchange_id", table_name="exchange_round")
    op.drop_table("exchange_round")

    op.drop_index("ix_exchange_guild", table_name="exchange")
    op.drop_table("exchange")
