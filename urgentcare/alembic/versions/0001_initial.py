"""Initial database schema: catalog tables and the care-request aggregate."""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

_ASSIGNED = "'matched', 'en_route', 'arrived', 'in_progress', 'completed'"
_STATUSES = ("pending", "searching", "matched", "en_route", "arrived", "in_progress", "completed", "cancelled")


def _timestamp(name, nullable=True, server_default=False):
    kwargs = {"nullable": nullable}
    if server_default:
        kwargs["server_default"] = sa.text("CURRENT_TIMESTAMP")
    return sa.Column(name, sa.DateTime(timezone=True), **kwargs)


def upgrade():
    op.create_table(
        "service_types",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at", nullable=False, server_default=True),
    )

    op.create_table(
        "symptoms",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("category", sa.String(length=60)),
        sa.Column("severity_weight", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("requires_immediate_care", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _timestamp("created_at", nullable=False, server_default=True),
    )
    op.create_index("ix_symptoms_name", "symptoms", ["name"])

    op.create_table(
        "care_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("patient_id", sa.String(length=36), nullable=False),
        sa.Column("provider_id", sa.String(length=36)),
        sa.Column("service_type_id", sa.String(length=36), sa.ForeignKey("service_types.id"), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*_STATUSES, name="carerequeststatus", native_enum=False, length=20),
            nullable=False,
        ),
        sa.Column("address_line1", sa.String(length=255), nullable=False),
        sa.Column("address_line2", sa.String(length=255)),
        sa.Column("city", sa.String(length=120), nullable=False),
        sa.Column("state", sa.String(length=60), nullable=False),
        sa.Column("zip_code", sa.String(length=20), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        _timestamp("created_at", nullable=False),
        _timestamp("updated_at", nullable=False),
        _timestamp("matched_at"),
        _timestamp("arrived_at"),
        _timestamp("completed_at"),
        _timestamp("cancelled_at"),
        sa.Column("cancellation_reason", sa.Text()),
        sa.Column("cancelled_by", sa.Enum("patient", "admin", name="cancelledby", native_enum=False, length=10)),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("additional_fees", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("donation_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("insurance_coverage", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("patient_responsibility", sa.Numeric(10, 2), nullable=False),
        sa.Column("patient_notes", sa.Text()),
        sa.Column("provider_notes", sa.Text()),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint(
            f"(provider_id IS NOT NULL) = (status IN ({_ASSIGNED}))",
            name="ck_care_requests_provider_matches_status",
        ),
        sa.CheckConstraint("(completed_at IS NOT NULL) = (status = 'completed')", name="ck_care_requests_completed_at"),
        sa.CheckConstraint("(cancelled_at IS NOT NULL) = (status = 'cancelled')", name="ck_care_requests_cancelled_at"),
    )
    op.create_index("ix_care_requests_patient_id", "care_requests", ["patient_id"])
    op.create_index("ix_care_requests_provider_id", "care_requests", ["provider_id"])
    op.create_index("ix_care_requests_status", "care_requests", ["status"])

    op.create_table(
        "case_patients",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "care_request_id",
            sa.String(length=36),
            sa.ForeignKey("care_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("relationship", sa.String(length=60), nullable=False),
        sa.Column("date_of_birth", sa.String(length=10)),
        sa.Column("gender", sa.String(length=30)),
        sa.Column("notes", sa.Text()),
        _timestamp("created_at", nullable=False),
    )
    op.create_index("ix_case_patients_care_request_id", "case_patients", ["care_request_id"])

    op.create_table(
        "case_patient_symptoms",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "case_patient_id",
            sa.String(length=36),
            sa.ForeignKey("case_patients.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("symptom_id", sa.String(length=36), sa.ForeignKey("symptoms.id")),
        sa.Column("custom_symptom", sa.String(length=255)),
        sa.Column("severity", sa.Integer(), nullable=False),
        sa.Column("duration", sa.String(length=60)),
        sa.Column("notes", sa.Text()),
        _timestamp("created_at", nullable=False),
        sa.CheckConstraint("severity BETWEEN 1 AND 10", name="ck_case_patient_symptoms_severity"),
        sa.CheckConstraint(
            "(symptom_id IS NULL) <> (custom_symptom IS NULL)",
            name="ck_case_patient_symptoms_one_source",
        ),
    )
    op.create_index("ix_case_patient_symptoms_case_patient_id", "case_patient_symptoms", ["case_patient_id"])


def downgrade():
    op.drop_table("case_patient_symptoms")
    op.drop_table("case_patients")
    op.drop_table("care_requests")
    op.drop_table("symptoms")
    op.drop_table("service_types")
