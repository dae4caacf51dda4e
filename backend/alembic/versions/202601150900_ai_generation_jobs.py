"""AI plan generation job queue."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202601150900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "ai_generation_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("familiarity", sa.Text(), nullable=True),
        sa.Column("agent", sa.Text(), nullable=True),
        sa.Column("model", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("response_id", sa.Text(), nullable=True),
        sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status in ('pending', 'in_progress', 'completed', 'failed')",
            name="ck_ai_generation_jobs_status",
        ),
    )
    op.create_index(
        "ai_generation_jobs_status_created_idx",
        "ai_generation_jobs",
        ["status", "created_at"],
        unique=False,
    )
    op.create_index("ai_generation_jobs_agent_idx", "ai_generation_jobs", ["agent"], unique=False)
    op.create_index("ai_generation_jobs_familiarity_idx", "ai_generation_jobs", ["familiarity"], unique=False)

    # updated_at is also touched by the application; the trigger covers manual SQL.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION ai_generation_jobs_touch_updated_at()
        RETURNS trigger AS $$
        BEGIN
            IF NEW.updated_at IS NOT DISTINCT FROM OLD.updated_at THEN
                NEW.updated_at = now();
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER ai_generation_jobs_touch_updated_at
        BEFORE UPDATE ON ai_generation_jobs
        FOR EACH ROW EXECUTE FUNCTION ai_generation_jobs_touch_updated_at();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS ai_generation_jobs_touch_updated_at ON ai_generation_jobs")
    op.execute("DROP FUNCTION IF EXISTS ai_generation_jobs_touch_updated_at()")
    op.drop_index("ai_generation_jobs_familiarity_idx", table_name="ai_generation_jobs")
    op.drop_index("ai_generation_jobs_agent_idx", table_name="ai_generation_jobs")
    op.drop_index("ai_generation_jobs_status_created_idx", table_name="ai_generation_jobs")
    op.drop_table("ai_generation_jobs")
