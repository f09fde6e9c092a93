"""initial stock ledger schema

Revision ID: 5a1c0e7d2b10
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5a1c0e7d2b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
FK = sa.BigInteger()
TS = sa.DateTime(timezone=True)

# Les enums SQLAlchemy stockent le NOM du membre python
ROLE = sa.Enum("admin", "staff", "system", name="role")
ITEM_STATUS = sa.Enum("active", "inactive", name="item_status")
MOVEMENT_DIRECTION = sa.Enum("inbound", "outbound", name="movement_direction")
REFERENCE_TYPE = sa.Enum(
    "purchase_order", "sales_order", "adjustment", "manual", "opening", name="reference_type"
)
SALES_ORDER_STATUS = sa.Enum("pending", "completed", "cancelled", name="sales_order_status")
REQUIREMENT_STATUS = sa.Enum(
    "sufficient", "shortage", "critical", "fulfilled", "cancelled", name="requirement_status"
)
URGENCY = sa.Enum("low", "medium", "high", "critical", name="urgency")
REQUISITION_STATUS = sa.Enum("pending", "approved", "rejected", "converted", name="requisition_status")
PO_STATUS = sa.Enum("pending", "approved", "delivered", "cancelled", name="po_status")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", PK, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "suppliers",
        sa.Column("id", PK, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("email", sa.String(255)),
        sa.Column("lead_time_days", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.CheckConstraint("lead_time_days >= 0", name="ck_supplier_lead_time_nonneg"),
    )

    op.create_table(
        "items",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("uom", sa.String(32), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("reorder_level", sa.Integer(), nullable=False),
        sa.Column("status", ITEM_STATUS, nullable=False),
        sa.Column("qty_on_hand", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("qty_on_hand >= 0", name="ck_item_on_hand_nonneg"),
        sa.CheckConstraint("reorder_level >= 0", name="ck_item_reorder_level_nonneg"),
        sa.CheckConstraint("unit_price >= 0", name="ck_item_unit_price_nonneg"),
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", PK, primary_key=True),
        sa.Column("item_id", FK, sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("direction", MOVEMENT_DIRECTION, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reference_type", REFERENCE_TYPE, nullable=False),
        sa.Column("reference_number", sa.String(64)),
        sa.Column("notes", sa.String(255)),
        sa.Column("previous_quantity", sa.Integer(), nullable=False),
        sa.Column("new_quantity", sa.Integer(), nullable=False),
        sa.Column("happened_at", TS, nullable=False),
        sa.Column("created_by", FK, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        sa.CheckConstraint("new_quantity >= 0", name="ck_stock_movement_new_qty_nonneg"),
    )
    op.create_index("ix_stock_movements_item_id", "stock_movements", ["item_id"])
    op.create_index("ix_stock_movements_item_time", "stock_movements", ["item_id", "happened_at"])

    op.create_table(
        "sales_orders",
        sa.Column("id", PK, primary_key=True),
        sa.Column("so_number", sa.String(64), nullable=False, unique=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("contact_number", sa.String(64)),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("installation_date", sa.Date()),
        sa.Column("status", SALES_ORDER_STATUS, nullable=False),
        sa.Column("created_by", FK, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("completed_by", FK, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("completed_at", TS),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "sales_order_lines",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sales_order_id", FK, sa.ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("item_id", FK, sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_so_line_qty_pos"),
    )
    op.create_index("ix_sales_order_lines_sales_order_id", "sales_order_lines", ["sales_order_id"])

    op.create_table(
        "stock_requirements",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sales_order_id", FK, sa.ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "sales_order_line_id",
            FK,
            sa.ForeignKey("sales_order_lines.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("item_id", FK, sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("required_quantity", sa.Integer(), nullable=False),
        sa.Column("available_quantity", sa.Integer(), nullable=False),
        sa.Column("shortage_quantity", sa.Integer(), nullable=False),
        sa.Column("status", REQUIREMENT_STATUS, nullable=False),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.UniqueConstraint("sales_order_line_id", "item_id", name="uq_requirement_line_item"),
        sa.CheckConstraint("shortage_quantity >= 0", name="ck_requirement_shortage_nonneg"),
    )
    op.create_index("ix_stock_requirements_sales_order_id", "stock_requirements", ["sales_order_id"])
    op.create_index("ix_stock_requirements_item_id", "stock_requirements", ["item_id"])

    op.create_table(
        "purchase_orders",
        sa.Column("id", PK, primary_key=True),
        sa.Column("po_number", sa.String(64), nullable=False, unique=True),
        sa.Column("supplier_id", FK, sa.ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("item_id", FK, sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", PO_STATUS, nullable=False),
        sa.Column("expected_delivery_date", sa.Date()),
        sa.Column("received_quantity", sa.Integer()),
        sa.Column("delivered_at", TS),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", FK, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("approved_by", FK, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("approved_at", TS),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_po_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_po_unit_price_nonneg"),
        sa.CheckConstraint("received_quantity IS NULL OR received_quantity > 0", name="ck_po_received_qty_pos"),
    )

    op.create_table(
        "purchase_requisitions",
        sa.Column("id", PK, primary_key=True),
        sa.Column("pr_number", sa.String(64), nullable=False, unique=True),
        sa.Column("item_id", FK, sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("sales_order_id", FK, sa.ForeignKey("sales_orders.id", ondelete="SET NULL")),
        sa.Column("required_quantity", sa.Integer(), nullable=False),
        sa.Column("urgency", URGENCY, nullable=False),
        sa.Column("status", REQUISITION_STATUS, nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("rejection_reason", sa.Text()),
        sa.Column("requested_by", FK, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("approved_by", FK, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("approved_at", TS),
        sa.Column("converted_to_po_id", FK, sa.ForeignKey("purchase_orders.id", ondelete="SET NULL")),
        # au plus une réquisition active par (article, commande) : NULL hors pending/approved
        sa.Column("active_key", sa.String(64), unique=True),
        sa.Column("created_at", TS, nullable=False),
        sa.CheckConstraint("required_quantity > 0", name="ck_requisition_qty_pos"),
    )
    op.create_index("ix_purchase_requisitions_item_id", "purchase_requisitions", ["item_id"])
    op.create_index(
        "ix_requisitions_item_so_status",
        "purchase_requisitions",
        ["item_id", "sales_order_id", "status"],
    )

    op.create_table(
        "number_series",
        sa.Column("id", PK, primary_key=True),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False),
        sa.UniqueConstraint("code", "year", name="uq_number_series_code_year"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", PK, primary_key=True),
        sa.Column("actor_id", FK, sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("module", sa.String(64), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_audit_module_action", "audit_log", ["module", "action"])


def downgrade() -> None:
    op.drop_index("ix_audit_module_action", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("number_series")
    op.drop_index("ix_requisitions_item_so_status", table_name="purchase_requisitions")
    op.drop_index("ix_purchase_requisitions_item_id", table_name="purchase_requisitions")
    op.drop_table("purchase_requisitions")
    op.drop_table("purchase_orders")
    op.drop_index("ix_stock_requirements_item_id", table_name="stock_requirements")
    op.drop_index("ix_stock_requirements_sales_order_id", table_name="stock_requirements")
    op.drop_table("stock_requirements")
    op.drop_index("ix_sales_order_lines_sales_order_id", table_name="sales_order_lines")
    op.drop_table("sales_order_lines")
    op.drop_table("sales_orders")
    op.drop_index("ix_stock_movements_item_time", table_name="stock_movements")
    op.drop_index("ix_stock_movements_item_id", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_table("items")
    op.drop_table("suppliers")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (
        PO_STATUS,
        REQUISITION_STATUS,
        URGENCY,
        REQUIREMENT_STATUS,
        SALES_ORDER_STATUS,
        REFERENCE_TYPE,
        MOVEMENT_DIRECTION,
        ITEM_STATUS,
        ROLE,
    ):
        enum.drop(bind, checkfirst=True)
