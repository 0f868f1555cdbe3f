"""Finished-goods inventory counters used by dine-in orders."""

from fastapi import APIRouter

from cafepos.core.rbac import CurrentUser
from cafepos.core.responses import list_response
from cafepos.core.validators import PositiveIntId
from cafepos.db.session import DbSession
from cafepos.models.menu import Inventory
from cafepos.schemas.ingredient import InventoryResponse, InventoryUpdate
from cafepos.services.stock_ledger import StockLedgerService

router = APIRouter()


def _to_response(inv: Inventory) -> InventoryResponse:
    item = inv.menu_item
    return InventoryResponse(
        id=inv.id,
        menu_item_id=inv.menu_item_id,
        menu_item_name=item.name if item else "",
        category=item.category.name if item and item.category else None,
        quantity=inv.quantity,
        low_stock=inv.low_stock,
        updated_at=inv.updated_at,
    )


@router.get("/")
def list_inventory(db: DbSession, current_user: CurrentUser):
    return list_response([_to_response(inv) for inv in StockLedgerService(db).list_inventory()])


@router.get("/low-stock")
def low_stock_inventory(db: DbSession, current_user: CurrentUser):
    return list_response([_to_response(inv) for inv in StockLedgerService(db).low_stock_inventory()])


@router.put("/{inventory_id}", response_model=InventoryResponse)
def update_inventory(
    inventory_id: PositiveIntId, body: InventoryUpdate, db: DbSession, current_user: CurrentUser
):
    """Set the counter after a manual stock count."""
    return _to_response(StockLedgerService(db).set_inventory_quantity(inventory_id, body.quantity))
