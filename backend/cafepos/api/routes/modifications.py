"""Order-line modification catalog (extra shot, oat milk, ...)."""

import logging
from collections import defaultdict

from fastapi import APIRouter, status

from cafepos.core.exceptions import ConflictError, NotFoundError
from cafepos.core.rbac import CurrentUser
from cafepos.core.responses import list_response
from cafepos.core.validators import PositiveIntId
from cafepos.db.session import DbSession
from cafepos.models.menu import Modification
from cafepos.schemas.ingredient import ModificationCreate, ModificationResponse, ModificationUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_or_404(db, modification_id: int) -> Modification:
    modification = db.get(Modification, modification_id)
    if modification is None:
        raise NotFoundError("Modification", modification_id)
    return modification


def _name_taken(db, name: str, exclude_id: int = None) -> bool:
    query = db.query(Modification.id).filter(Modification.name == name)
    if exclude_id is not None:
        query = query.filter(Modification.id != exclude_id)
    return query.first() is not None


@router.get("/")
def list_active_modifications(db: DbSession, current_user: CurrentUser):
    """Active modifications grouped by category."""
    mods = (
        db.query(Modification)
        .filter(Modification.is_active.is_(True))
        .order_by(Modification.category, Modification.name)
        .all()
    )
    grouped = defaultdict(list)
    for mod in mods:
        grouped[mod.category].append(ModificationResponse.model_validate(mod))
    return {"categories": dict(grouped), "total": len(mods)}


@router.get("/all")
def list_all_modifications(db: DbSession, current_user: CurrentUser):
    mods = db.query(Modification).order_by(Modification.category, Modification.name).all()
    return list_response([ModificationResponse.model_validate(m) for m in mods])


@router.post("/", response_model=ModificationResponse, status_code=status.HTTP_201_CREATED)
def create_modification(body: ModificationCreate, db: DbSession, current_user: CurrentUser):
    if _name_taken(db, body.name):
        raise ConflictError("Modification with this name already exists")
    mod = Modification(name=body.name, price=body.price, category=body.category)
    db.add(mod)
    db.commit()
    db.refresh(mod)
    logger.info(f"Modification {mod.name} created")
    return mod


@router.put("/{modification_id}", response_model=ModificationResponse)
def update_modification(
    modification_id: PositiveIntId, body: ModificationUpdate, db: DbSession, current_user: CurrentUser
):
    mod = _get_or_404(db, modification_id)
    if body.name is not None:
        name = body.name.strip()
        if name != mod.name and _name_taken(db, name, exclude_id=mod.id):
            raise ConflictError("Modification with this name already exists")
        mod.name = name
    if body.price is not None:
        mod.price = body.price
    if body.category is not None:
        mod.category = body.category.strip() or "Other"
    if body.is_active is not None:
        mod.is_active = body.is_active
    db.commit()
    db.refresh(mod)
    return mod


@router.delete("/{modification_id}", response_model=ModificationResponse)
def deactivate_modification(modification_id: PositiveIntId, db: DbSession, current_user: CurrentUser):
    """Soft delete; past order lines keep their snapshot."""
    mod = _get_or_404(db, modification_id)
    mod.is_active = False
    db.commit()
    db.refresh(mod)
    logger.info(f"Modification {mod.name} deactivated")
    return mod
