"""Admin spreadsheet export of trades."""

import io
from datetime import datetime
from typing import Optional

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from watermarket.models.trade import Trade

SHEET_TITLE = "Trades"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADERS = [
    "Trade ID",
    "Created At",
    "Updated At",
    "Status",
    "Round",
    "Last Actor",
    "Listing Title",
    "District",
    "Water Type",
    "Window",
    "Seller Name",
    "Seller Email",
    "Buyer Name",
    "Buyer Email",
    "Acre-Feet",
    "Price / AF (USD)",
    "Total (USD)",
]

# Leading characters a spreadsheet app would read as the start of a formula
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def spreadsheet_safe(value):
    """Quote text that would otherwise be evaluated as a formula."""
    if isinstance(value, str) and value.startswith(FORMULA_PREFIXES):
        return "'" + value
    return value


def _timestamp(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def trade_row(trade: Trade) -> list:
    seller, buyer = trade.seller, trade.buyer
    row = [
        trade.id,
        _timestamp(trade.created_at),
        _timestamp(trade.updated_at),
        trade.status,
        trade.round,
        trade.last_actor,
        trade.listing.title if trade.listing else "",
        trade.district,
        trade.water_type or "",
        trade.window_label or "",
        seller.display_name if seller else "",
        seller.email if seller else "",
        buyer.display_name if buyer else "",
        buyer.email if buyer else "",
        trade.volume_af,
        round(trade.price_per_af / 100, 2),
        round(trade.volume_af * trade.price_per_af / 100, 2),
    ]
    return [spreadsheet_safe(v) for v in row]


def build_trades_workbook(trades: list[Trade]) -> bytes:
    """One sheet, one row per trade, newest first as given. Tokens are never exported."""
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(HEADERS)
    for trade in trades:
        ws.append(trade_row(trade))

    ws.freeze_panes = "A2"
    for idx, header in enumerate(HEADERS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(12, len(header) + 2)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def export_filename(today) -> str:
    return f"trades-{today.isoformat()}.xlsx"
