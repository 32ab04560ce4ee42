import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query
from app.dependencies import get_db_path
from app.models.catalog import (
    create_product,
    get_product,
    list_products,
    update_product,
    delete_product,
)
from app.models.schemas import Product, ProductCreate, ProductUpdate
from app.security import require_auth

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=list[Product])
async def list_all_products(
    category_id: int | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db_path: str = Depends(get_db_path),
):
    return await list_products(
        db_path, category_id=category_id, search=search, limit=limit, offset=offset
    )


@router.post("", response_model=Product, status_code=201)
async def create_new_product(
    body: ProductCreate,
    db_path: str = Depends(get_db_path),
    _: str = Depends(require_auth),
):
    try:
        return await create_product(db_path, **body.model_dump())
    except aiosqlite.IntegrityError:
        raise HTTPException(status_code=422, detail="Category does not exist")


@router.get("/{product_id}", response_model=Product)
async def get_product_detail(
    product_id: int,
    db_path: str = Depends(get_db_path),
):
    product = await get_product(db_path, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.put("/{product_id}", response_model=Product)
async def update_existing_product(
    product_id: int,
    body: ProductUpdate,
    db_path: str = Depends(get_db_path),
    _: str = Depends(require_auth),
):
    if await get_product(db_path, product_id) is None:
        raise HTTPException(status_code=404, detail="Product not found")
    try:
        return await update_product(db_path, product_id, **body.model_dump(exclude_unset=True))
    except aiosqlite.IntegrityError:
        raise HTTPException(status_code=422, detail="Category does not exist")


@router.delete("/{product_id}", status_code=204)
async def delete_existing_product(
    product_id: int,
    db_path: str = Depends(get_db_path),
    _: str = Depends(require_auth),
):
    try:
        deleted = await delete_product(db_path, product_id)
    except aiosqlite.IntegrityError:
        raise HTTPException(status_code=409, detail="Product is referenced by existing orders")
    if not deleted:
        raise HTTPException(status_code=404, detail="Product not found")
