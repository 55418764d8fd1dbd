"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates the tables for shared meeting groups:
users, meeting_groups, group_members, group_invitations,
meetings, meeting_attendees.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

group_role = sa.Enum("owner", "member", name="grouprole")
invitation_status = sa.Enum("pending", "accepted", "declined", "cancelled", name="invitationstatus")


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- meeting_groups ---
    op.create_table(
        "meeting_groups",
        sa.Column("group_id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("join_code", sa.String(6), nullable=False, unique=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- group_members ---
    op.create_table(
        "group_members",
        sa.Column("membership_id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("meeting_groups.group_id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("role", group_role, nullable=False, server_default="member"),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )

    # --- group_invitations ---
    op.create_table(
        "group_invitations",
        sa.Column("invitation_id", sa.String(36), primary_key=True),
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("meeting_groups.group_id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("invited_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("status", invitation_status, nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_group_invitations_pending",
        "group_invitations",
        ["group_id", "email"],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )

    # --- meetings ---
    op.create_table(
        "meetings",
        sa.Column("meeting_id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("group_id", sa.String(36),
                  sa.ForeignKey("meeting_groups.group_id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- meeting_attendees ---
    op.create_table(
        "meeting_attendees",
        sa.Column("attendee_id", sa.String(36), primary_key=True),
        sa.Column("meeting_id", sa.String(36),
                  sa.ForeignKey("meetings.meeting_id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("user_id", sa.String(36), sa.ForeignKey("users.user_id"), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("meeting_attendees")
    op.drop_table("meetings")
    op.drop_index("uq_group_invitations_pending", table_name="group_invitations")
    op.drop_table("group_invitations")
    op.drop_table("group_members")
    op.drop_table("meeting_groups")
    op.drop_table("users")
    invitation_status.drop(op.get_bind(), checkfirst=True)
    group_role.drop(op.get_bind(), checkfirst=True)
