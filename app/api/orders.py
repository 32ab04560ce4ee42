from fastapi import APIRouter, Depends, HTTPException, Query
from app.dependencies import get_db_path
from app.models.orders import (
    create_order,
    get_order,
    list_orders,
    update_order_status,
    OrderStatusError,
    OrderValidationError,
)
from app.models.schemas import Order, OrderCreate, OrderStatus, OrderStatusUpdate, OrderSummary
from app.security import require_auth

router = APIRouter(prefix="/api/orders", tags=["orders"], dependencies=[Depends(require_auth)])


@router.post("", response_model=Order, status_code=201)
async def create_new_order(
    body: OrderCreate,
    db_path: str = Depends(get_db_path),
):
    try:
        return await create_order(
            db_path,
            customer_phone=body.customer_phone,
            items=[(item.product_id, item.quantity) for item in body.items],
            customer_name=body.customer_name,
            notes=body.notes,
        )
    except OrderValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("", response_model=list[OrderSummary])
async def list_all_orders(
    status: OrderStatus | None = Query(default=None),
    customer_phone: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db_path: str = Depends(get_db_path),
):
    return await list_orders(
        db_path, status=status, customer_phone=customer_phone, limit=limit, offset=offset
    )


@router.get("/{order_id}", response_model=Order)
async def get_order_detail(
    order_id: int,
    db_path: str = Depends(get_db_path),
):
    order = await get_order(db_path, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.patch("/{order_id}/status", response_model=Order)
async def change_order_status(
    order_id: int,
    body: OrderStatusUpdate,
    db_path: str = Depends(get_db_path),
):
    try:
        order = await update_order_status(db_path, order_id, body.status)
    except OrderStatusError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order
