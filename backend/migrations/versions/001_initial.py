"""initial schema — pulse engine

Revision ID: 001_initial
Create Date: 17/10/2026
"""
from alembic import op
import sqlalchemy as sa

revision = '001_initial'
down_revision = None

# Valeurs des Enums (noms des membres Python, convention SQLAlchemy Enum)
PULSE_SCALE = ('LIKERT_1_5', 'NPS_0_10')
PULSE_CADENCE = ('WEEKLY', 'BIWEEKLY', 'MONTHLY')


def upgrade() -> None:
    # ── 1. ANNUAIRE (miroir lecture seule) ──
    op.create_table("tenants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String, nullable=False, unique=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("anon_threshold", sa.Integer, nullable=True),
    )

    op.create_table("members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String, nullable=False),
        sa.Column("primary_team_id", sa.String(36), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_members_tenant_id", "members", ["tenant_id"])

    # ── 2. QUESTIONS & PLANNING ──
    op.create_table("pulse_questions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("text", sa.String, nullable=False),
        sa.Column("category", sa.String, nullable=True),
        sa.Column("scale", sa.Enum(*PULSE_SCALE, name="pulsescale"), nullable=False, server_default="LIKERT_1_5"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_pulse_questions_tenant_id", "pulse_questions", ["tenant_id"])

    op.create_table("pulse_schedules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False, unique=True),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cadence", sa.Enum(*PULSE_CADENCE, name="pulsecadence"), nullable=False, server_default="WEEKLY"),
        sa.Column("day_of_week", sa.Integer, nullable=False, server_default="0"),
        sa.Column("time_of_day", sa.String(5), nullable=False, server_default="09:00"),
        sa.Column("timezone", sa.String, nullable=False, server_default="UTC"),
        sa.Column("rotating_cohorts", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("cohort_count", sa.Integer, nullable=False, server_default="5"),
        sa.Column("cohort_day_map", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── 3. COHORTES ──
    op.create_table("pulse_cohorts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("tenant_id", "name", name="uq_pulse_cohort_tenant_name"),
    )
    op.create_index("ix_pulse_cohorts_tenant_id", "pulse_cohorts", ["tenant_id"])

    op.create_table("pulse_cohort_members",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("cohort_id", sa.String(36), sa.ForeignKey("pulse_cohorts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("tenant_id", "user_id", name="uq_pulse_cohort_member"),
    )
    op.create_index("ix_pulse_cohort_members_cohort_id", "pulse_cohort_members", ["cohort_id"])

    # ── 4. INVITATIONS & RÉPONSES ──
    op.create_table("pulse_invites",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(36), nullable=False),
        sa.Column("question_id", sa.String(36), sa.ForeignKey("pulse_questions.id"), nullable=False),
        sa.Column("cohort_name", sa.String, nullable=True),
        sa.Column("team_id", sa.String(36), nullable=True),
        sa.Column("token", sa.String, nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_pulse_invites_tenant_id", "pulse_invites", ["tenant_id"])
    op.create_index("ix_pulse_invites_user_id", "pulse_invites", ["user_id"])
    op.create_index("ix_pulse_invites_question_id", "pulse_invites", ["question_id"])
    op.create_index("ix_pulse_invites_token", "pulse_invites", ["token"], unique=True)

    # Aucune colonne d'identité : user_id, IP, user-agent, texte libre exclus
    op.create_table("pulse_responses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("invite_id", sa.String(36), sa.ForeignKey("pulse_invites.id"), nullable=False, unique=True),
        sa.Column("question_id", sa.String(36), sa.ForeignKey("pulse_questions.id"), nullable=False),
        sa.Column("team_id", sa.String(36), nullable=True),
        sa.Column("score", sa.Integer, nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_pulse_responses_tenant_id", "pulse_responses", ["tenant_id"])
    op.create_index("ix_pulse_responses_question_id", "pulse_responses", ["question_id"])
    op.create_index("ix_pulse_responses_team_id", "pulse_responses", ["team_id"])
    op.create_index("ix_pulse_responses_responded_at", "pulse_responses", ["responded_at"])

    # ── 5. IDEMPOTENCE DU SCHEDULER ──
    op.create_table("pulse_dispatch_runs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("cycle_key", sa.String(10), nullable=False),
        sa.Column("status", sa.String, nullable=True),
        sa.Column("cohort_name", sa.String, nullable=True),
        sa.Column("question_id", sa.String(36), nullable=True),
        sa.Column("sent", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("tenant_id", "cycle_key", name="uq_pulse_dispatch_tenant_cycle"),
    )


def downgrade() -> None:
    tables = [
        "pulse_dispatch_runs", "pulse_responses", "pulse_invites",
        "pulse_cohort_members", "pulse_cohorts",
        "pulse_schedules", "pulse_questions",
        "members", "tenants",
    ]
    for table in tables:
        op.drop_table(table)

    if op.get_bind().dialect.name == "postgresql":
        for e in ["pulsescale", "pulsecadence"]:
            op.execute(f"DROP TYPE IF EXISTS {e}")
