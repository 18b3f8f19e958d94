"""
Relational schema touched by the auth core (SQLAlchemy Core)
"""
import sqlalchemy as sa

metadata = sa.MetaData()

verification_session = sa.Table(
    "verification_session",
    metadata,
    sa.Column("session_uid", sa.String(64), primary_key=True),
    sa.Column("external_txn_id", sa.String(128), nullable=False),
    sa.Column("client_name", sa.String(128), nullable=False),
    sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
    sa.Column("audit_status", sa.String(16), nullable=False, server_default="pending"),
    sa.Column("created_at", sa.DateTime, nullable=False),
    sa.Column("updated_at", sa.DateTime, nullable=False),
    sa.CheckConstraint(
        "status IN ('pending', 'completed', 'incomplete')", name="ck_verification_session_status"
    ),
    sa.CheckConstraint(
        "audit_status IN ('pending', 'pass', 'fail')", name="ck_verification_session_audit_status"
    ),
)

PENDING_TXN_INDEX = "uq_verification_session_pending_txn"

# At most one pending session per (client, external transaction)
sa.Index(
    PENDING_TXN_INDEX,
    verification_session.c.client_name,
    verification_session.c.external_txn_id,
    unique=True,
    postgresql_where=sa.text("status = 'pending'"),
    sqlite_where=sa.text("status = 'pending'"),
)

sa.Index("ix_verification_session_status_created", verification_session.c.status, verification_session.c.created_at)

business_partner_pan_data = sa.Table(
    "business_partner_pan_data",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column(
        "session_uid",
        sa.String(64),
        sa.ForeignKey("verification_session.session_uid"),
        nullable=False,
        index=True,
    ),
    sa.Column("pan_number", sa.String(16), nullable=False),
    sa.Column("full_name", sa.String(256), nullable=False),
    sa.Column("father_name", sa.String(256), nullable=False),
    sa.Column("date_of_birth", sa.String(16), nullable=False),
    sa.Column("source_party", sa.String(128), nullable=True),
)

api_clients = sa.Table(
    "api_clients",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("client_name", sa.String(128), nullable=False),
    sa.Column("api_key", sa.String(128), unique=True, nullable=False),
    # Raw shared secret, not a hash
    sa.Column("api_secret", sa.String(256), nullable=False),
    sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
)

audit_session = sa.Table(
    "audit_session",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("username", sa.String(128), unique=True, nullable=False),
    sa.Column("password", sa.String(256), nullable=False),
)
