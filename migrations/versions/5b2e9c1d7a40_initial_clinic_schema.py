"""initial clinic schema

Revision ID: 5b2e9c1d7a40
Revises:
Create Date: 2026-02-02 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b2e9c1d7a40'
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_WHERE = "status IN ('booked', 'confirmed', 'checked_in')"


def upgrade():
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=150), nullable=True),
        sa.Column('phone_number', sa.String(length=30), nullable=True),
        sa.Column('dni', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_dni'), ['dni'], unique=False)

    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('user_id', 'role_id')
    )
    op.create_table(
        'user_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('client_ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('user_sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_user_sessions_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_user_sessions_token_hash'), ['token_hash'], unique=True)

    op.create_table(
        'rate_limit_windows',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_ip', sa.String(length=64), nullable=False),
        sa.Column('bucket', sa.String(length=40), nullable=False),
        sa.Column('window_start', sa.DateTime(), nullable=False),
        sa.Column('hits', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_ip', 'bucket', name='uq_rate_limit_windows_ip_bucket')
    )

    op.create_table(
        'specialties',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('booking_mode', sa.String(length=10), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("booking_mode IN ('SLOT', 'REQUEST', 'WALKIN')", name='ck_specialties_booking_mode'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )
    op.create_table(
        'doctors',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('display_name', sa.String(length=150), nullable=False),
        sa.Column('title_prefix', sa.String(length=20), nullable=True),
        sa.Column('is_visible', sa.Boolean(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )
    op.create_table(
        'doctor_specialty',
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('specialty_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ),
        sa.ForeignKeyConstraint(['specialty_id'], ['specialties.id'], ),
        sa.PrimaryKeyConstraint('doctor_id', 'specialty_id')
    )
    op.create_table(
        'schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('specialty_id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=10), nullable=False),
        sa.Column('days_mask', sa.Integer(), nullable=False),
        sa.Column('date_start', sa.Date(), nullable=False),
        sa.Column('date_end', sa.Date(), nullable=True),
        sa.Column('time_start', sa.Time(), nullable=False),
        sa.Column('time_end', sa.Time(), nullable=False),
        sa.Column('slot_minutes', sa.Integer(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("type IN ('WEEKLY', 'ONE_OFF')", name='ck_schedules_type'),
        sa.CheckConstraint('slot_minutes > 0', name='ck_schedules_slot_minutes'),
        sa.CheckConstraint('capacity >= 1', name='ck_schedules_capacity'),
        sa.CheckConstraint('time_start < time_end', name='ck_schedules_time_range'),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ),
        sa.ForeignKeyConstraint(['specialty_id'], ['specialties.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('schedules', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_schedules_specialty_id'), ['specialty_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_schedules_doctor_id'), ['doctor_id'], unique=False)

    op.create_table(
        'schedule_exceptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('schedule_id', sa.Integer(), nullable=False),
        sa.Column('the_date', sa.Date(), nullable=False),
        sa.Column('is_closed', sa.Boolean(), nullable=False),
        sa.Column('ex_time_start', sa.Time(), nullable=True),
        sa.Column('ex_time_end', sa.Time(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('schedule_id', 'the_date', name='uq_schedule_exception_date')
    )
    with op.batch_alter_table('schedule_exceptions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_schedule_exceptions_schedule_id'), ['schedule_id'], unique=False)

    op.create_table(
        'clinic_hours',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('day_of_week BETWEEN 1 AND 7', name='ck_clinic_hours_day'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('clinic_hours', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_clinic_hours_day_of_week'), ['day_of_week'], unique=False)

    op.create_table(
        'appointments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('specialty_id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=True),
        sa.Column('patient_name', sa.String(length=150), nullable=False),
        sa.Column('dni', sa.String(length=20), nullable=False),
        sa.Column('birthdate', sa.Date(), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('start_dt', sa.DateTime(), nullable=False),
        sa.Column('end_dt', sa.DateTime(), nullable=False),
        sa.Column('appointment_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('start_dt < end_dt', name='ck_appointments_time_range'),
        sa.CheckConstraint(
            "status IN ('booked', 'confirmed', 'checked_in', 'cancelled')",
            name='ck_appointments_status'
        ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ),
        sa.ForeignKeyConstraint(['specialty_id'], ['specialties.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('appointments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_appointments_specialty_id'), ['specialty_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_appointments_doctor_id'), ['doctor_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_appointments_dni'), ['dni'], unique=False)
        batch_op.create_index(batch_op.f('ix_appointments_start_dt'), ['start_dt'], unique=False)
        batch_op.create_index(batch_op.f('ix_appointments_appointment_date'), ['appointment_date'], unique=False)

    op.create_index(
        'uq_appointments_patient_day', 'appointments', ['dni', 'appointment_date'],
        unique=True,
        sqlite_where=sa.text(ACTIVE_WHERE),
        postgresql_where=sa.text(ACTIVE_WHERE),
    )
    op.create_index(
        'uq_appointments_doctor_slot', 'appointments', ['doctor_id', 'start_dt'],
        unique=True,
        sqlite_where=sa.text(ACTIVE_WHERE + " AND doctor_id IS NOT NULL"),
        postgresql_where=sa.text(ACTIVE_WHERE + " AND doctor_id IS NOT NULL"),
    )

    # other stores serialize a doctor's bookings per day through this row
    op.create_table(
        'doctor_day_locks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('doctor_id', sa.Integer(), nullable=False),
        sa.Column('the_date', sa.Date(), nullable=False),
        sa.Column('claims', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['doctor_id'], ['doctors.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('doctor_id', 'the_date', name='uq_doctor_day_locks_doctor_date')
    )

    # PostgreSQL can reject any overlapping window for a doctor, not just equal starts
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('CREATE EXTENSION IF NOT EXISTS btree_gist')
        op.execute(
            "ALTER TABLE appointments ADD CONSTRAINT ex_appointments_doctor_overlap "
            "EXCLUDE USING gist (doctor_id WITH =, tsrange(start_dt, end_dt) WITH &&) "
            "WHERE (doctor_id IS NOT NULL AND " + ACTIVE_WHERE + ")"
        )


def downgrade():
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('ALTER TABLE appointments DROP CONSTRAINT IF EXISTS ex_appointments_doctor_overlap')

    op.drop_table('doctor_day_locks')
    op.drop_index('uq_appointments_doctor_slot', table_name='appointments')
    op.drop_index('uq_appointments_patient_day', table_name='appointments')
    op.drop_table('appointments')
    op.drop_table('clinic_hours')
    op.drop_table('schedule_exceptions')
    op.drop_table('schedules')
    op.drop_table('doctor_specialty')
    op.drop_table('doctors')
    op.drop_table('specialties')
    op.drop_table('rate_limit_windows')
    op.drop_table('user_sessions')
    op.drop_table('user_roles')
    op.drop_table('users')
    op.drop_table('roles')
