"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated: bool = True) -> list:
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        )
    ]
    if with_updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    # Create providers table
    op.create_table(
        "providers",
        sa.Column("provider_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("base_url", sa.String(length=500), nullable=False),
        sa.Column("supported_models", sa.JSON(), nullable=False),
        sa.Column("rate_limit_rpm", sa.Integer(), nullable=True),
        sa.Column("rate_limit_tpm", sa.Integer(), nullable=True),
        sa.Column("encrypted_credential", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("provider_id"),
        sa.UniqueConstraint("name"),
    )

    # Create model_configs table
    op.create_table(
        "model_configs",
        sa.Column("model_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("provider_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("display_name", sa.String(length=200), nullable=False),
        sa.Column("model_type", sa.String(length=20), nullable=False, server_default="chat"),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="secondary"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("parameters", sa.JSON(), nullable=False),
        sa.Column("context_window", sa.Integer(), nullable=False, server_default="4000"),
        sa.Column("cost_per_1k_tokens", sa.Float(), nullable=False, server_default="0"),
        sa.Column("custom_api_url", sa.String(length=500), nullable=True),
        sa.Column("encrypted_credential", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("metadata", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["provider_id"], ["providers.provider_id"]),
        sa.PrimaryKeyConstraint("model_id"),
        sa.UniqueConstraint("provider_id", "name", name="uq_provider_model_name"),
        sa.CheckConstraint(
            "role IN ('primary', 'secondary', 'disabled')", name="ck_model_configs_role"
        ),
    )
    # At most one primary model across the catalog
    op.create_index(
        "uq_model_configs_single_primary",
        "model_configs",
        ["role"],
        unique=True,
        postgresql_where=sa.text("role = 'primary'"),
    )
    op.create_index(
        "idx_model_configs_role_priority", "model_configs", ["role", "priority"]
    )

    # Create prompt_templates table
    op.create_table(
        "prompt_templates",
        sa.Column("template_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("family", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("version", sa.String(length=50), nullable=False),
        sa.Column("texts", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("template_id"),
        sa.UniqueConstraint("name", "version", name="uq_prompt_template_name_version"),
    )

    # Create usage_logs table
    op.create_table(
        "usage_logs",
        sa.Column("log_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("model_id", sa.Integer(), nullable=True),
        sa.Column("model_name", sa.String(length=100), nullable=True),
        sa.Column("provider_name", sa.String(length=50), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("tokens_used", sa.Integer(), nullable=True),
        sa.Column("response_time_ms", sa.Integer(), nullable=True),
        sa.Column("upstream_request_id", sa.String(length=200), nullable=True),
        sa.Column("output_language", sa.String(length=20), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(
            ["model_id"], ["model_configs.model_id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("log_id"),
    )
    op.create_index("idx_usage_status_time", "usage_logs", ["status", "created_at"])
    op.create_index("idx_usage_model_time", "usage_logs", ["model_id", "created_at"])

    # Create admin_users table
    op.create_table(
        "admin_users",
        sa.Column("user_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(with_updated=False),
        sa.PrimaryKeyConstraint("user_id"),
        sa.UniqueConstraint("username"),
    )


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("admin_users")
    op.drop_index("idx_usage_model_time", table_name="usage_logs")
    op.drop_index("idx_usage_status_time", table_name="usage_logs")
    op.drop_table("usage_logs")
    op.drop_table("prompt_templates")
    op.drop_index("idx_model_configs_role_priority", table_name="model_configs")
    op.drop_index("uq_model_configs_single_primary", table_name="model_configs")
    op.drop_table("model_configs")
    op.drop_table("providers")
