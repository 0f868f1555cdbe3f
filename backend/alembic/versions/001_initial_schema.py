"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("OWNER", "MANAGER", "STAFF", name="userrole")
table_status = sa.Enum("AVAILABLE", "OCCUPIED", "RESERVED", name="tablestatus")
ingredient_unit = sa.Enum(
    "GRAMS", "KG", "ML", "LITERS", "PIECES", "CUPS", "TABLESPOONS", "TEASPOONS",
    name="ingredientunit",
)
stock_change_type = sa.Enum("PURCHASE", "WASTAGE", "ORDER_USAGE", name="stockchangetype")
order_type = sa.Enum("DINE_IN", "DELIVERY", "TAKEAWAY", name="ordertype")
order_status = sa.Enum("PENDING", "PREPARING", "SERVED", "PAID", "CANCELLED", name="orderstatus")
payment_mode = sa.Enum("CASH", "CARD", "UPI", name="paymentmode")
delivery_platform = sa.Enum("DIRECT", "ZOMATO", "SWIGGY", "TAKEAWAY", name="deliveryplatform")
delivery_status = sa.Enum(
    "PENDING", "CONFIRMED", "PREPARING", "READY_FOR_PICKUP", "OUT_FOR_DELIVERY",
    "DELIVERED", "CANCELLED",
    name="deliverystatus",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    # Floor plan
    op.create_table(
        "tables",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("number", sa.String(50), unique=True, nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("status", table_status, nullable=False, index=True),
        sa.Column("current_bill", sa.Numeric(10, 2), nullable=False),
        sa.Column("order_time", sa.DateTime(), nullable=True),
        sa.Column("customer_name", sa.String(200), nullable=True),
        sa.Column("customer_phone", sa.String(50), nullable=True),
        sa.Column("reserved_from", sa.DateTime(), nullable=True),
        sa.Column("reserved_until", sa.DateTime(), nullable=True),
        *_timestamps(),
    )

    # Menu catalog
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
    )
    op.create_table(
        "menu_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, index=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "category_id", sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "inventory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "menu_item_id", sa.Integer(),
            sa.ForeignKey("menu_items.id", ondelete="CASCADE"), unique=True, nullable=False,
        ),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("low_stock", sa.Boolean(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "modifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
    )

    # Ingredients and recipes
    op.create_table(
        "ingredients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(200), unique=True, nullable=False),
        sa.Column("unit", ingredient_unit, nullable=False),
        sa.Column("current_stock", sa.Numeric(12, 3), nullable=False),
        sa.Column("min_stock", sa.Numeric(12, 3), nullable=False),
        sa.Column("cost_per_unit", sa.Numeric(10, 2), nullable=False),
        sa.Column("supplier", sa.String(200), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "menu_item_ingredients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "menu_item_id", sa.Integer(),
            sa.ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column(
            "ingredient_id", sa.Integer(),
            sa.ForeignKey("ingredients.id"), nullable=False, index=True,
        ),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
        sa.UniqueConstraint("menu_item_id", "ingredient_id", name="uq_menu_item_ingredient"),
    )

    # Orders
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("bill_number", sa.String(20), nullable=False),
        sa.Column("order_type", order_type, nullable=False, index=True),
        sa.Column("table_id", sa.Integer(), sa.ForeignKey("tables.id"), nullable=True, index=True),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False),
        sa.Column("tax", sa.Numeric(10, 2), nullable=False),
        sa.Column("total", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", order_status, nullable=False, index=True),
        sa.Column("payment_mode", payment_mode, nullable=True),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("bill_number", name="uq_orders_bill_number"),
    )
    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "order_id", sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("menu_item_id", sa.Integer(), sa.ForeignKey("menu_items.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_table(
        "order_item_modifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "order_item_id", sa.Integer(),
            sa.ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column(
            "modification_id", sa.Integer(),
            sa.ForeignKey("modifications.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
    )
    op.create_table(
        "delivery_info",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "order_id", sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"), unique=True, nullable=False,
        ),
        sa.Column("customer_name", sa.String(200), nullable=False),
        sa.Column("customer_phone", sa.String(50), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("delivery_address", sa.Text(), nullable=True),
        sa.Column("platform", delivery_platform, nullable=False, index=True),
        sa.Column("platform_order_id", sa.String(100), nullable=True, index=True),
        sa.Column("delivery_status", delivery_status, nullable=False, index=True),
        sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("packaging_fee", sa.Numeric(10, 2), nullable=False),
        sa.Column("special_instructions", sa.Text(), nullable=True),
        sa.Column("estimated_time", sa.DateTime(), nullable=True),
        sa.Column("actual_time", sa.DateTime(), nullable=True),
        sa.Column("delivery_partner_name", sa.String(200), nullable=True),
        sa.Column("delivery_partner_phone", sa.String(50), nullable=True),
        *_timestamps(),
    )

    # Ingredient stock audit log
    op.create_table(
        "ingredient_stock_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ingredient_id", sa.Integer(),
            sa.ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("change_type", stock_change_type, nullable=False),
        sa.Column("quantity", sa.Numeric(12, 3), nullable=False),
        sa.Column(
            "order_id", sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, index=True),
    )


def downgrade() -> None:
    for table in (
        "ingredient_stock_logs",
        "delivery_info",
        "order_item_modifications",
        "order_items",
        "orders",
        "menu_item_ingredients",
        "ingredients",
        "modifications",
        "inventory",
        "menu_items",
        "categories",
        "tables",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        delivery_status, delivery_platform, payment_mode, order_status, order_type,
        stock_change_type, ingredient_unit, table_status, user_role,
    ):
        enum.drop(bind, checkfirst=True)
