"""game states, theme progress and world shards

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from narrator.db.models import JSONType

# revision identifiers, used by Alembic.
revision: str = "0001_init"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "game_states",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("theme_id", sa.String(length=64), nullable=False),
        sa.Column("player_identifier", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("game_history", JSONType, nullable=False),
        sa.Column("game_history_summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("game_history_lore", sa.Text(), nullable=False, server_default=""),
        sa.Column("last_dashboard_updates", JSONType, nullable=False),
        sa.Column("last_game_state_indicators", JSONType, nullable=False),
        sa.Column("current_prompt_type", sa.String(length=64), nullable=False, server_default="default"),
        sa.Column("current_narrative_language", sa.String(length=16), nullable=False, server_default="en"),
        sa.Column("last_suggested_actions", JSONType, nullable=False),
        sa.Column("panel_states", JSONType, nullable=False),
        sa.Column("input_placeholder", sa.Text(), nullable=False, server_default=""),
        sa.Column("model_name_used", sa.String(length=128), nullable=False, server_default=""),
        sa.Column("is_boon_selection_pending", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "theme_id", name="uq_game_states_user_theme"),
    )
    op.create_index("ix_game_states_user_id", "game_states", ["user_id"], unique=False)
    op.create_index("ix_game_states_theme_id", "game_states", ["theme_id"], unique=False)
    op.create_index("ix_game_states_created_at", "game_states", ["created_at"], unique=False)
    op.create_index("ix_game_states_updated_at", "game_states", ["updated_at"], unique=False)

    op.create_table(
        "user_theme_progress",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("theme_id", sa.String(length=64), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("current_xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_integrity_bonus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_willpower_bonus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("aptitude_bonus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("resilience_bonus", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("acquired_traits", JSONType, nullable=False),
        sa.Column("is_boon_selection_pending", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "theme_id", name="uq_user_theme_progress_user_theme"),
    )
    op.create_index("ix_user_theme_progress_user_id", "user_theme_progress", ["user_id"], unique=False)
    op.create_index("ix_user_theme_progress_theme_id", "user_theme_progress", ["theme_id"], unique=False)
    op.create_index("ix_user_theme_progress_updated_at", "user_theme_progress", ["updated_at"], unique=False)

    op.create_table(
        "world_shards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("theme_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("key_suggestion", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("unlock_condition_description", sa.Text(), nullable=False, server_default=""),
        sa.Column("is_active_for_new_games", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("unlocked_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_world_shards_user_id", "world_shards", ["user_id"], unique=False)
    op.create_index("ix_world_shards_theme_id", "world_shards", ["theme_id"], unique=False)
    op.create_index("ix_world_shards_is_active_for_new_games", "world_shards", ["is_active_for_new_games"], unique=False)
    op.create_index("ix_world_shards_unlocked_at", "world_shards", ["unlocked_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_world_shards_unlocked_at", table_name="world_shards")
    op.drop_index("ix_world_shards_is_active_for_new_games", table_name="world_shards")
    op.drop_index("ix_world_shards_theme_id", table_name="world_shards")
    op.drop_index("ix_world_shards_user_id", table_name="world_shards")
    op.drop_table("world_shards")
    op.drop_index("ix_user_theme_progress_updated_at", table_name="user_theme_progress")
    op.drop_index("ix_user_theme_progress_theme_id", table_name="user_theme_progress")
    op.drop_index("ix_user_theme_progress_user_id", table_name="user_theme_progress")
    op.drop_table("user_theme_progress")
    op.drop_index("ix_game_states_updated_at", table_name="game_states")
    op.drop_index("ix_game_states_created_at", table_name="game_states")
    op.drop_index("ix_game_states_theme_id", table_name="game_states")
    op.drop_index("ix_game_states_user_id", table_name="game_states")
    op.drop_table("game_states")
