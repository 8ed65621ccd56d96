"""Add SLA escalation tracking.

Revision ID: 002
Revises: 001
Create Date: 2026-01-02

WHAT: Adds the ticket timer fields and the ticket_escalations table.

WHY: The SLA escalation scan needs:
- response_clock_start: start of the current response-waiting window
- first_escalated_at: first warning ever raised on the ticket
- is_escalated: admin level reached in the current breach cycle
- an append-only log of warning/escalated records per ticket

HOW: A partial unique index on (ticket_id, escalation_level) over
unresolved rows guarantees at most one open record per level, so
overlapping scans cannot raise the same stage twice.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


escalation_level = sa.Enum("warning", "escalated", name="escalationlevel")
notification_channel = sa.Enum("telegram", "admin", name="notificationchannel")


def upgrade() -> None:
    """
    Add escalation columns and table.

    WHY: Existing tickets start their response clock at creation time.
    """
    op.add_column(
        "tickets",
        sa.Column(
            "response_clock_start",
            sa.DateTime(),
            nullable=True,
            comment="Start of the current response-waiting window",
        ),
    )
    op.add_column(
        "tickets",
        sa.Column(
            "first_escalated_at",
            sa.DateTime(),
            nullable=True,
            comment="When the first SLA warning was raised",
        ),
    )
    op.add_column(
        "tickets",
        sa.Column(
            "is_escalated",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
            comment="Admin escalation reached in the current breach cycle",
        ),
    )
    op.execute("UPDATE tickets SET response_clock_start = created_at WHERE response_clock_start IS NULL")
    op.create_index("ix_tickets_status_is_escalated", "tickets", ["status", "is_escalated"])

    op.create_table(
        "ticket_escalations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ticket_id",
            sa.Integer(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("escalation_level", escalation_level, nullable=False),
        sa.Column("escalated_at", sa.DateTime(), nullable=False),
        sa.Column("notification_channel", notification_channel, nullable=False),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_ticket_escalations_ticket_level",
        "ticket_escalations",
        ["ticket_id", "escalation_level"],
    )
    op.create_index("ix_ticket_escalations_is_resolved", "ticket_escalations", ["is_resolved"])
    op.create_index("ix_ticket_escalations_escalated_at", "ticket_escalations", ["escalated_at"])
    op.create_index(
        "uq_ticket_escalations_unresolved_level",
        "ticket_escalations",
        ["ticket_id", "escalation_level"],
        unique=True,
        postgresql_where=sa.text("is_resolved = false"),
    )


def downgrade() -> None:
    """Remove escalation table and columns."""
    op.drop_index("uq_ticket_escalations_unresolved_level", table_name="ticket_escalations")
    op.drop_index("ix_ticket_escalations_escalated_at", table_name="ticket_escalations")
    op.drop_index("ix_ticket_escalations_is_resolved", table_name="ticket_escalations")
    op.drop_index("ix_ticket_escalations_ticket_level", table_name="ticket_escalations")
    op.drop_table("ticket_escalations")

    escalation_level.drop(op.get_bind(), checkfirst=True)
    notification_channel.drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_tickets_status_is_escalated", table_name="tickets")
    op.drop_column("tickets", "is_escalated")
    op.drop_column("tickets", "first_escalated_at")
    op.drop_column("tickets", "response_clock_start")
