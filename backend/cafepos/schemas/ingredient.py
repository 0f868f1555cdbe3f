"""Ingredient, recipe, inventory counter and modification schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from cafepos.models.ingredient import IngredientUnit, StockChangeType
from cafepos.schemas.common import coerce_enum


class IngredientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    unit: IngredientUnit = IngredientUnit.GRAMS
    current_stock: Decimal = Field(
        default=Decimal("0"), ge=0,
        validation_alias=AliasChoices("current_stock", "currentStock"),
    )
    min_stock: Decimal = Field(
        default=Decimal("10"), ge=0, validation_alias=AliasChoices("min_stock", "minStock")
    )
    cost_per_unit: Decimal = Field(
        default=Decimal("0"), ge=0,
        validation_alias=AliasChoices("cost_per_unit", "costPerUnit"),
    )
    supplier: Optional[str] = Field(default=None, max_length=200)

    @field_validator("unit", mode="before")
    @classmethod
    def _unit_any_case(cls, v):
        return coerce_enum(IngredientUnit, v)


class IngredientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    unit: Optional[IngredientUnit] = None
    min_stock: Optional[Decimal] = Field(
        default=None, ge=0, validation_alias=AliasChoices("min_stock", "minStock")
    )
    cost_per_unit: Optional[Decimal] = Field(
        default=None, ge=0, validation_alias=AliasChoices("cost_per_unit", "costPerUnit")
    )
    supplier: Optional[str] = Field(default=None, max_length=200)

    @field_validator("unit", mode="before")
    @classmethod
    def _unit_any_case(cls, v):
        return coerce_enum(IngredientUnit, v)


class StockChange(BaseModel):
    """Body of add-stock and wastage requests."""

    quantity: Decimal = Field(..., gt=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class IngredientResponse(BaseModel):
    id: int
    name: str
    unit: IngredientUnit
    current_stock: Decimal
    min_stock: Decimal
    cost_per_unit: Decimal
    supplier: Optional[str] = None
    low_stock: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class IngredientWithUsage(IngredientResponse):
    used_in: List[str] = []


class StockLogResponse(BaseModel):
    id: int
    ingredient_id: int
    change_type: StockChangeType
    quantity: Decimal
    order_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RecipeLineIn(BaseModel):
    ingredient_id: int = Field(
        ..., gt=0, validation_alias=AliasChoices("ingredient_id", "ingredientId")
    )
    quantity: Decimal = Field(..., gt=0)


class RecipeSet(BaseModel):
    ingredients: List[RecipeLineIn] = []


class RecipeLineResponse(BaseModel):
    id: int
    menu_item_id: int
    ingredient_id: int
    quantity: Decimal
    ingredient: IngredientResponse

    model_config = {"from_attributes": True}


class InventoryUpdate(BaseModel):
    quantity: int = Field(..., ge=0)


class InventoryResponse(BaseModel):
    id: int
    menu_item_id: int
    menu_item_name: str
    category: Optional[str] = None
    quantity: int
    low_stock: bool
    updated_at: datetime


class ModificationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Decimal("0")
    category: str = Field(default="Other", max_length=50)

    @field_validator("name", "category")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ModificationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    price: Optional[Decimal] = None
    category: Optional[str] = Field(default=None, max_length=50)
    is_active: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("is_active", "isActive")
    )


class ModificationResponse(BaseModel):
    id: int
    name: str
    price: Decimal
    category: str
    is_active: bool

    model_config = {"from_attributes": True}
