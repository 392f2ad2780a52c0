"""Admin router — trade and user reporting."""

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from watermarket.database import get_db
from watermarket.middleware.auth import require_admin
from watermarket.models.user import User
from watermarket.routers.auth import _user_to_response
from watermarket.routers.trades import _trade_to_response
from watermarket.schemas.admin import AdminTradeListResponse, AdminUserListResponse
from watermarket.services import trade_service
from watermarket.services.export_service import XLSX_MEDIA_TYPE, build_trades_workbook, export_filename

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/trades", response_model=AdminTradeListResponse)
def list_trades(
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """All trades, newest first, optionally filtered by status."""
    trades = trade_service.list_trades(db, status=status)
    return AdminTradeListResponse(
        trades=[_trade_to_response(t, "admin") for t in trades],
        total=len(trades),
    )


@router.get("/trades/export")
def export_trades(
    status: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Excel workbook of trades created between `from` and `to` (inclusive days)."""
    trades = trade_service.list_trades(db, status=status, created_from=date_from, created_to=date_to)
    filename = export_filename(datetime.now(timezone.utc).date())
    return Response(
        content=build_trades_workbook(trades),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/users", response_model=AdminUserListResponse)
def list_users(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """All registered users."""
    users = db.query(User).order_by(User.created_at.desc()).all()
    return AdminUserListResponse(
        users=[_user_to_response(u) for u in users],
        total=len(users),
    )
