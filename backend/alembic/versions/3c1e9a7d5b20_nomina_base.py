"""nomina_base: companies, employees, periods, records, novedades, vouchers,
versions, pending adjustments, social benefits, vacations

- UUID PKs (sa.Uuid renders native UUID on PostgreSQL, CHAR(32) elsewhere)
- JSONB on PostgreSQL for snapshots/breakdowns, JSON elsewhere
- enums stored as VARCHAR + CHECK (native_enum=False)
- created_at with server_default=func.now()
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.sql import func

# --- Alembic headers ---------------------------------------------------------
revision: str = "3c1e9a7d5b20"
down_revision: str | None = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


periodicity = _enum("payroll_periodicity", "semanal", "quincenal", "mensual")
period_status = _enum("payroll_period_status", "borrador", "en_proceso", "cerrado", "reabierto")
record_status = _enum("payroll_record_status", "borrador", "procesada")
incapacity_policy = _enum("incapacity_policy", "standard_2d_100_rest_66", "from_day1_66_with_floor")
provision_mode = _enum("provision_mode", "on_liquidation", "manual")
voucher_status = _enum("voucher_status", "generado", "enviado", "error")
novedad_source = _enum("novedad_source", "manual", "vacation", "adjustment")
adjustment_status = _enum("pending_adjustment_status", "pendiente", "aplicado", "descartado")
benefit_type = _enum("social_benefit_type", "cesantias", "intereses_cesantias", "prima", "vacaciones")
provision_status = _enum("social_benefit_status", "calculado", "liquidado")
vacation_status = _enum("vacation_status", "confirmado", "liquidado", "cancelado")


def _id() -> sa.Column:
    return sa.Column("id", sa.Uuid(), primary_key=True, nullable=False)


def _fk(name: str, target: str, ondelete: str = "CASCADE", nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.Uuid(), sa.ForeignKey(target, ondelete=ondelete), nullable=nullable)


def _money(name: str, precision: int = 14) -> sa.Column:
    return sa.Column(name, sa.Numeric(precision, 2), nullable=False, server_default="0")


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=func.now())


def upgrade() -> None:
    # companies ---------------------------------------------------------------
    op.create_table(
        "companies",
        _id(),
        sa.Column("nit", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("periodicity", periodicity, nullable=False, server_default="quincenal"),
        sa.Column("incapacity_policy", incapacity_policy, nullable=False, server_default="standard_2d_100_rest_66"),
        sa.Column("provision_mode", provision_mode, nullable=False, server_default="on_liquidation"),
        sa.Column("arl_rate", sa.Numeric(8, 5), nullable=False, server_default="0.00522"),
        sa.Column("meta", JSONType, nullable=False),
        _created_at(),
    )

    # employees ---------------------------------------------------------------
    op.create_table(
        "employees",
        _id(),
        _fk("company_id", "companies.id"),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("document_no", sa.String(length=20), nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("hire_date", sa.Date(), nullable=True),
        sa.Column("termination_date", sa.Date(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("base_salary", sa.Numeric(14, 2), nullable=False),
        sa.Column("vacation_balance", sa.Numeric(6, 2), nullable=False, server_default="15"),
        sa.Column("eps", sa.String(length=120), nullable=True),
        sa.Column("afp", sa.String(length=120), nullable=True),
        sa.Column("meta", JSONType, nullable=False),
        _created_at(),
        sa.UniqueConstraint("company_id", "code", name="uq_employees_company_code"),
    )

    # payroll_periods ---------------------------------------------------------
    op.create_table(
        "payroll_periods",
        _id(),
        _fk("company_id", "companies.id"),
        sa.Column("period_key", sa.String(length=32), nullable=False),
        sa.Column("label", sa.String(length=120), nullable=False),
        sa.Column("periodicity", periodicity, nullable=False),
        sa.Column("period_number", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("status", period_status, nullable=False, server_default="borrador"),
        sa.Column("reported_dian", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("employees_count", sa.Integer(), nullable=False, server_default="0"),
        _money("total_earnings", 16),
        _money("total_deductions", 16),
        _money("total_net", 16),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reopened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reopened_by", sa.String(length=255), nullable=True),
        sa.Column("meta", JSONType, nullable=False),
        _created_at(),
        sa.UniqueConstraint("company_id", "periodicity", "start_date", "end_date", name="uq_payroll_periods_span"),
    )
    op.create_index("ix_payroll_periods_company_start", "payroll_periods", ["company_id", "start_date"])

    # payroll_records ---------------------------------------------------------
    op.create_table(
        "payroll_records",
        _id(),
        _fk("company_id", "companies.id"),
        _fk("period_id", "payroll_periods.id"),
        _fk("employee_id", "employees.id", ondelete="RESTRICT"),
        _money("base_salary"),
        sa.Column("worked_days", sa.Numeric(6, 2), nullable=False, server_default="0"),
        _money("regular_pay"),
        _money("extra_pay"),
        _money("incapacity_value"),
        _money("transport_allowance"),
        _money("gross_pay"),
        _money("health_deduction"),
        _money("pension_deduction"),
        _money("solidarity_fund"),
        _money("withholding_tax"),
        _money("novelty_deductions"),
        _money("total_deductions"),
        _money("net_pay"),
        _money("ibc"),
        _money("employer_contributions"),
        _money("total_cost"),
        sa.Column("status", record_status, nullable=False, server_default="borrador"),
        sa.Column("is_stale", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("breakdown", JSONType, nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("period_id", "employee_id", name="uq_payroll_records_period_employee"),
    )
    op.create_index("ix_payroll_records_employee_id", "payroll_records", ["employee_id"])

    # payroll_period_audit ----------------------------------------------------
    op.create_table(
        "payroll_period_audit",
        _id(),
        _fk("period_id", "payroll_periods.id"),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("previous_state", sa.String(length=20), nullable=True),
        sa.Column("new_state", sa.String(length=20), nullable=True),
        sa.Column("has_vouchers", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("actor", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_payroll_period_audit_period_id", "payroll_period_audit", ["period_id"])

    # payroll_versions --------------------------------------------------------
    op.create_table(
        "payroll_versions",
        _id(),
        _fk("company_id", "companies.id"),
        _fk("period_id", "payroll_periods.id"),
        sa.Column("version_no", sa.Integer(), nullable=False),
        sa.Column("version_type", sa.String(length=32), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("snapshot", JSONType, nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        _created_at(),
        sa.UniqueConstraint("period_id", "version_no", name="uq_payroll_versions_no"),
    )

    # payroll_vouchers --------------------------------------------------------
    op.create_table(
        "payroll_vouchers",
        _id(),
        _fk("company_id", "companies.id"),
        _fk("period_id", "payroll_periods.id"),
        _fk("payroll_id", "payroll_records.id"),
        _fk("employee_id", "employees.id", ondelete="RESTRICT"),
        sa.Column("reference_no", sa.String(length=64), nullable=False, unique=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        _money("net_pay"),
        sa.Column("html", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", voucher_status, nullable=False, server_default="generado"),
        sa.Column("sent_to_employee", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sent_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("payroll_id", name="uq_payroll_vouchers_payroll"),
    )
    op.create_index("ix_payroll_vouchers_period_id", "payroll_vouchers", ["period_id"])

    # payroll_novedades -------------------------------------------------------
    op.create_table(
        "payroll_novedades",
        _id(),
        _fk("company_id", "companies.id"),
        _fk("employee_id", "employees.id"),
        _fk("period_id", "payroll_periods.id"),
        sa.Column("novedad_type", sa.String(length=40), nullable=False),
        sa.Column("subtype", sa.String(length=40), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("days", sa.Numeric(6, 2), nullable=True),
        sa.Column("hours", sa.Numeric(8, 2), nullable=True),
        _money("value"),
        sa.Column("constitutive", sa.Boolean(), nullable=True),
        sa.Column("calc_basis", JSONType, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source", novedad_source, nullable=False, server_default="manual"),
        sa.Column("source_ref", sa.Uuid(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_payroll_novedades_employee_id", "payroll_novedades", ["employee_id"])
    op.create_index("ix_payroll_novedades_period_id", "payroll_novedades", ["period_id"])

    # pending_adjustments -----------------------------------------------------
    op.create_table(
        "pending_adjustments",
        _id(),
        _fk("company_id", "companies.id"),
        _fk("period_id", "payroll_periods.id"),
        _fk("employee_id", "employees.id"),
        sa.Column("novedad_type", sa.String(length=40), nullable=False),
        sa.Column("subtype", sa.String(length=40), nullable=True),
        sa.Column("days", sa.Numeric(6, 2), nullable=True),
        sa.Column("hours", sa.Numeric(8, 2), nullable=True),
        _money("value"),
        sa.Column("constitutive", sa.Boolean(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("justification", sa.Text(), nullable=False),
        sa.Column("status", adjustment_status, nullable=False, server_default="pendiente"),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applied_novedad_id", sa.Uuid(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        _created_at(),
    )
    op.create_index("ix_pending_adjustments_period_id", "pending_adjustments", ["period_id"])

    # period_corrections ------------------------------------------------------
    op.create_table(
        "period_corrections",
        _id(),
        _fk("company_id", "companies.id"),
        _fk("period_id", "payroll_periods.id"),
        _fk("employee_id", "employees.id"),
        sa.Column("correction_type", sa.String(length=32), nullable=False, server_default="pending_adjustment"),
        sa.Column("concept", sa.String(length=200), nullable=False),
        sa.Column("justification", sa.Text(), nullable=True),
        _money("previous_value"),
        _money("new_value"),
        _money("value_difference"),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        _created_at(),
    )
    op.create_index("ix_period_corrections_period_id", "period_corrections", ["period_id"])

    # social_benefit_liquidations ---------------------------------------------
    op.create_table(
        "social_benefit_liquidations",
        _id(),
        _fk("company_id", "companies.id"),
        sa.Column("benefit_type", benefit_type, nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("label", sa.String(length=120), nullable=False),
        sa.Column("employees_count", sa.Integer(), nullable=False, server_default="0"),
        _money("total_amount", 16),
        sa.Column("detail", JSONType, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
    )

    # social_benefit_provisions -----------------------------------------------
    op.create_table(
        "social_benefit_provisions",
        _id(),
        _fk("company_id", "companies.id"),
        _fk("employee_id", "employees.id"),
        _fk("period_id", "payroll_periods.id", ondelete="SET NULL", nullable=True),
        sa.Column("benefit_type", benefit_type, nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        _money("amount"),
        sa.Column("calculation_basis", JSONType, nullable=False),
        sa.Column("status", provision_status, nullable=False, server_default="calculado"),
        _fk("liquidation_id", "social_benefit_liquidations.id", ondelete="SET NULL", nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "employee_id", "benefit_type", "period_start", "period_end",
            name="uq_social_benefit_provisions_span",
        ),
    )
    op.create_index("ix_social_benefit_provisions_company_id", "social_benefit_provisions", ["company_id"])

    # vacation_periods --------------------------------------------------------
    op.create_table(
        "vacation_periods",
        _id(),
        _fk("company_id", "companies.id"),
        _fk("employee_id", "employees.id"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("days_count", sa.Integer(), nullable=False),
        sa.Column("status", vacation_status, nullable=False, server_default="confirmado"),
        sa.Column("notes", sa.Text(), nullable=True),
        _fk("processed_in_period_id", "payroll_periods.id", ondelete="SET NULL", nullable=True),
        _created_at(),
    )
    op.create_index("ix_vacation_periods_employee_id", "vacation_periods", ["employee_id"])


def downgrade() -> None:
    op.drop_index("ix_vacation_periods_employee_id", table_name="vacation_periods")
    op.drop_table("vacation_periods")
    op.drop_index("ix_social_benefit_provisions_company_id", table_name="social_benefit_provisions")
    op.drop_table("social_benefit_provisions")
    op.drop_table("social_benefit_liquidations")
    op.drop_index("ix_period_corrections_period_id", table_name="period_corrections")
    op.drop_table("period_corrections")
    op.drop_index("ix_pending_adjustments_period_id", table_name="pending_adjustments")
    op.drop_table("pending_adjustments")
    op.drop_index("ix_payroll_novedades_period_id", table_name="payroll_novedades")
    op.drop_index("ix_payroll_novedades_employee_id", table_name="payroll_novedades")
    op.drop_table("payroll_novedades")
    op.drop_index("ix_payroll_vouchers_period_id", table_name="payroll_vouchers")
    op.drop_table("payroll_vouchers")
    op.drop_table("payroll_versions")
    op.drop_index("ix_payroll_period_audit_period_id", table_name="payroll_period_audit")
    op.drop_table("payroll_period_audit")
    op.drop_index("ix_payroll_records_employee_id", table_name="payroll_records")
    op.drop_table("payroll_records")
    op.drop_index("ix_payroll_periods_company_start", table_name="payroll_periods")
    op.drop_table("payroll_periods")
    op.drop_table("employees")
    op.drop_table("companies")
