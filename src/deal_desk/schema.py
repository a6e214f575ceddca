"""
Relational schema for quotes and approval workflows.

SQLAlchemy Core tables so the same definitions serve PostgreSQL (asyncpg)
in production and SQLite (aiosqlite) locally. UUIDs are stored as strings,
money and percentages as NUMERIC with two decimals, enums as their string
values.

Tables:
- quotes
- quote_add_ons (add-on name and price captured at quote creation)
- workflows (1:1 with quotes)
- workflow_steps (UNIQUE workflow_id, step_order)
- packages, add_ons (read-only here; owned by the catalog service)
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

MONEY = Numeric(12, 2)
PERCENT = Numeric(5, 2)

quotes = Table(
    'quotes',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('org_id', String(64), nullable=False),
    Column('org_name', String(255)),
    Column('package_id', String(64), nullable=False),
    Column('package_name', String(255), nullable=False),
    Column('seats', Integer, nullable=False),
    Column('customer_name', String(255), nullable=False),
    Column('payment_kind', String(16), nullable=False),
    Column('net_days', Integer),
    Column('prepay_percent', PERCENT),
    Column('subtotal', MONEY, nullable=False),
    Column('discount_percent', PERCENT, nullable=False),
    Column('total', MONEY, nullable=False),
    Column('status', String(16), nullable=False),
    Column('contract_document', Text),
    Column('created_by', String(255)),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    Index('ix_quotes_status_created_at', 'status', 'created_at'),
    Index('ix_quotes_org_id', 'org_id'),
)

quote_add_ons = Table(
    'quote_add_ons',
    metadata,
    Column('quote_id', String(36), ForeignKey('quotes.id', ondelete='CASCADE'), primary_key=True),
    Column('position', Integer, primary_key=True),
    Column('add_on_id', String(64), nullable=False),
    Column('name', String(255), nullable=False),
    Column('unit_price', MONEY, nullable=False),
)

workflows = Table(
    'workflows',
    metadata,
    Column('id', String(36), primary_key=True),
    Column(
        'quote_id',
        String(36),
        ForeignKey('quotes.id', ondelete='CASCADE'),
        nullable=False,
        unique=True,
    ),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
)

workflow_steps = Table(
    'workflow_steps',
    metadata,
    Column('id', String(36), primary_key=True),
    Column(
        'workflow_id',
        String(36),
        ForeignKey('workflows.id', ondelete='CASCADE'),
        nullable=False,
    ),
    Column('step_order', Integer, nullable=False),
    Column('persona', String(16), nullable=False),
    Column('approver_id', String(255)),
    Column('status', String(16), nullable=False),
    Column('approved_at', DateTime(timezone=True)),
    Column('pending_since', DateTime(timezone=True)),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('workflow_id', 'step_order', name='uq_workflow_steps_order'),
)

packages = Table(
    'packages',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('org_id', String(64)),
    Column('name', String(255), nullable=False),
    Column('unit_price', MONEY, nullable=False),
)

add_ons = Table(
    'add_ons',
    metadata,
    Column('id', String(64), primary_key=True),
    Column('org_id', String(64)),
    Column('name', String(255), nullable=False),
    Column('unit_price', MONEY, nullable=False),
)
