import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query
from app.dependencies import get_db_path
from app.models.catalog import (
    create_category,
    get_category,
    list_categories,
    update_category,
    deactivate_category,
)
from app.models.schemas import Category, CategoryCreate, CategoryUpdate
from app.security import require_auth

router = APIRouter(prefix="/api/products/categories", tags=["categories"])


@router.get("", response_model=list[Category])
async def list_all_categories(
    include_inactive: bool = Query(default=False),
    db_path: str = Depends(get_db_path),
):
    return await list_categories(db_path, include_inactive=include_inactive)


@router.post("", response_model=Category, status_code=201)
async def create_new_category(
    body: CategoryCreate,
    db_path: str = Depends(get_db_path),
    _: str = Depends(require_auth),
):
    try:
        return await create_category(db_path, body.name, body.description, body.is_active)
    except aiosqlite.IntegrityError:
        raise HTTPException(status_code=409, detail="Category name already exists")


@router.get("/{category_id}", response_model=Category)
async def get_category_detail(
    category_id: int,
    db_path: str = Depends(get_db_path),
):
    category = await get_category(db_path, category_id)
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return category


@router.put("/{category_id}", response_model=Category)
async def update_existing_category(
    category_id: int,
    body: CategoryUpdate,
    db_path: str = Depends(get_db_path),
    _: str = Depends(require_auth),
):
    if await get_category(db_path, category_id) is None:
        raise HTTPException(status_code=404, detail="Category not found")
    try:
        return await update_category(db_path, category_id, **body.model_dump(exclude_unset=True))
    except aiosqlite.IntegrityError:
        raise HTTPException(status_code=409, detail="Category name already exists")


@router.delete("/{category_id}", status_code=204)
async def delete_category(
    category_id: int,
    db_path: str = Depends(get_db_path),
    _: str = Depends(require_auth),
):
    if not await deactivate_category(db_path, category_id):
        raise HTTPException(status_code=404, detail="Category not found")
