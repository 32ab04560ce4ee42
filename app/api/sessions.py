from fastapi import APIRouter, Depends, HTTPException, Query
from app.dependencies import get_db_path
from app.models.chat_sessions import (
    get_session,
    list_sessions,
    reset_session,
    get_items,
)
from app.models.schemas import SessionDetail, SessionInfo
from app.security import require_auth

router = APIRouter(prefix="/api/sessions", tags=["sessions"], dependencies=[Depends(require_auth)])


@router.get("", response_model=list[SessionInfo])
async def list_all_sessions(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db_path: str = Depends(get_db_path),
):
    sessions = await list_sessions(db_path, limit=limit, offset=offset)
    return [
        SessionInfo(
            phone=s["phone"],
            state=s["state"],
            item_count=s["item_count"],
            created_at=s["created_at"],
            last_active=s["updated_at"],
        )
        for s in sessions
    ]


@router.get("/{phone}", response_model=SessionDetail)
async def get_session_detail(
    phone: str,
    db_path: str = Depends(get_db_path),
):
    session = await get_session(db_path, phone)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    items = await get_items(db_path, session["id"])
    return SessionDetail(
        phone=session["phone"],
        state=session["state"],
        context=session["context"],
        created_at=session["created_at"],
        last_active=session["updated_at"],
        items=items,
        total=round(sum(item["line_total"] for item in items), 2),
    )


@router.delete("/{phone}", status_code=204)
async def delete_session(
    phone: str,
    db_path: str = Depends(get_db_path),
):
    if not await reset_session(db_path, phone):
        raise HTTPException(status_code=404, detail="Session not found")
