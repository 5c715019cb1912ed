"""campus inventory baseline

Revision ID: 3a1f0c9d7e21
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "3a1f0c9d7e21"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("campuses"):
        op.create_table(
            "campuses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.UniqueConstraint("name", name="uq_campuses_name"),
        )

    if not inspector.has_table("categories"):
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("campus_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["campus_id"], ["campuses.id"], name="fk_categories_campus_id", ondelete="CASCADE"),
            sa.UniqueConstraint("name", "campus_id", name="uq_categories_name_campus"),
        )
        op.create_index("ix_categories_campus_id", "categories", ["campus_id"])

    if not inspector.has_table("sectors"):
        op.create_table(
            "sectors",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("campus_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["campus_id"], ["campuses.id"], name="fk_sectors_campus_id", ondelete="CASCADE"),
            sa.UniqueConstraint("name", "campus_id", name="uq_sectors_name_campus"),
        )
        op.create_index("ix_sectors_campus_id", "sectors", ["campus_id"])

    if not inspector.has_table("users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(length=80), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="tecnico"),
            sa.Column("campus_id", sa.Integer(), nullable=True),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["campus_id"], ["campuses.id"], name="fk_users_campus_id"),
        )
        op.create_index("ix_users_username", "users", ["username"], unique=True)
        op.create_index("ix_users_campus_id", "users", ["campus_id"])

    if not inspector.has_table("inventory_items"):
        op.create_table(
            "inventory_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("campus_id", sa.Integer(), nullable=False),
            sa.Column("sector_id", sa.Integer(), nullable=True),
            sa.Column("category_id", sa.Integer(), nullable=True),
            sa.Column("sala", sa.String(length=120), nullable=True),
            sa.Column("brand", sa.String(length=120), nullable=True),
            sa.Column("serial", sa.String(length=120), nullable=False),
            sa.Column("patrimony", sa.String(length=120), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="funcionando"),
            sa.Column("previous_status", sa.String(length=20), nullable=True),
            sa.Column("responsible_id", sa.Integer(), nullable=True),
            sa.Column("responsible_name", sa.String(length=255), nullable=True),
            sa.Column("obs", sa.Text(), nullable=True),
            sa.Column("is_fixed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["campus_id"], ["campuses.id"], name="fk_inventory_items_campus_id"),
            sa.ForeignKeyConstraint(["sector_id"], ["sectors.id"], name="fk_inventory_items_sector_id"),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], name="fk_inventory_items_category_id"),
            sa.ForeignKeyConstraint(
                ["responsible_id"],
                ["users.id"],
                name="fk_inventory_items_responsible_id",
                ondelete="SET NULL",
            ),
        )
        op.create_index("ix_inventory_items_campus_id", "inventory_items", ["campus_id"])
        op.create_index("ix_inventory_items_sector_id", "inventory_items", ["sector_id"])
        op.create_index("ix_inventory_items_category_id", "inventory_items", ["category_id"])
        op.create_index("ix_inventory_items_serial", "inventory_items", ["serial"])
        op.create_index("ix_inventory_items_patrimony", "inventory_items", ["patrimony"])
        op.create_index("ix_inventory_items_status", "inventory_items", ["status"])

    if not inspector.has_table("loans"):
        op.create_table(
            "loans",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("item_id", sa.Integer(), nullable=True),
            sa.Column("item_serial", sa.String(length=120), nullable=False),
            sa.Column("item_category", sa.String(length=120), nullable=True),
            sa.Column("borrower_name", sa.String(length=255), nullable=False),
            sa.Column("borrower_contact", sa.String(length=255), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("loan_date", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("expected_return_date", sa.DateTime(), nullable=False),
            sa.Column("actual_return_date", sa.DateTime(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="loaned"),
            sa.Column("campus_id", sa.Integer(), nullable=False),
            sa.Column("loaner_id", sa.Integer(), nullable=True),
            sa.Column("loaner_name", sa.String(length=255), nullable=True),
            sa.ForeignKeyConstraint(["item_id"], ["inventory_items.id"], name="fk_loans_item_id", ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["campus_id"], ["campuses.id"], name="fk_loans_campus_id"),
            sa.ForeignKeyConstraint(["loaner_id"], ["users.id"], name="fk_loans_loaner_id", ondelete="SET NULL"),
        )
        op.create_index("ix_loans_item_id", "loans", ["item_id"])
        op.create_index("ix_loans_status", "loans", ["status"])
        op.create_index("ix_loans_campus_id", "loans", ["campus_id"])

    if not inspector.has_table("requests"):
        op.create_table(
            "requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("requester_email", sa.String(length=255), nullable=False),
            sa.Column("campus_id", sa.Integer(), nullable=False),
            sa.Column("setor", sa.String(length=120), nullable=False),
            sa.Column("sala", sa.String(length=120), nullable=True),
            sa.Column("details", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="aberto"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.ForeignKeyConstraint(["campus_id"], ["campuses.id"], name="fk_requests_campus_id"),
        )
        op.create_index("ix_requests_campus_id", "requests", ["campus_id"])
        op.create_index("ix_requests_status", "requests", ["status"])

    if not inspector.has_table("audit_log"):
        op.create_table(
            "audit_log",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("action", sa.String(length=20), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("user_name", sa.String(length=255), nullable=True),
            sa.Column("campus_id", sa.Integer(), nullable=True),
            sa.Column("campus_name", sa.String(length=120), nullable=True),
            sa.Column("item_id", sa.Integer(), nullable=True),
            sa.Column("item_snapshot", sa.JSON(), nullable=True),
            sa.Column("details", sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_audit_log_user_id", ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["campus_id"], ["campuses.id"], name="fk_audit_log_campus_id", ondelete="SET NULL"),
        )
        op.create_index("ix_audit_log_timestamp", "audit_log", ["timestamp"])
        op.create_index("ix_audit_log_action", "audit_log", ["action"])
        op.create_index("ix_audit_log_user_id", "audit_log", ["user_id"])
        op.create_index("ix_audit_log_campus_id", "audit_log", ["campus_id"])
        op.create_index("ix_audit_log_item_id", "audit_log", ["item_id"])

    # The sentinel campus every reserved account lands on
    op.execute(
        sa.text(
            "INSERT INTO campuses (name, created_at) "
            "SELECT 'Administrador', CURRENT_TIMESTAMP "
            "WHERE NOT EXISTS (SELECT 1 FROM campuses WHERE name = 'Administrador')"
        )
    )


def downgrade():
    for table in ("audit_log", "requests", "loans", "inventory_items", "users", "sectors", "categories", "campuses"):
        op.drop_table(table)
