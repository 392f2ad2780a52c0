"""Magic-link trade page — the human-facing target of every emailed link.

`/t/{trade_id}?token=...&action=accept|decline` runs the action as soon as the
page loads; `action=counter` does too when the new terms are in the query
string, otherwise it opens the pre-filled counter form. Failures of any kind
come back as a banner on the page, never as a stack trace.
"""

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, Form, Request
from sqlalchemy.orm import Session

from watermarket.database import get_db
from watermarket.errors import MarketError
from watermarket.middleware.auth import get_optional_user
from watermarket.models.trade import Trade
from watermarket.models.user import User
from watermarket.services import trade_service
from watermarket.services.notifications import Notifier, get_notifier
from watermarket.services.trade_machine import Action, allowed_actions
from watermarket.services.viewer import ANONYMOUS, Viewer, resolve_viewer
from watermarket.templating import templates

router = APIRouter(tags=["magic-link"])

PAGE_ACTIONS = {
    "accept": Action.ACCEPT,
    "counter": Action.COUNTER,
    "decline": Action.DECLINE,
}

SUCCESS_TEXT = {
    Action.ACCEPT: "Accepted. The buyer has been emailed to sign.",
    Action.COUNTER: "Counteroffer sent. The other party has been emailed.",
    Action.DECLINE: "Declined. The other party has been notified.",
}

INVALID_LINK = {"kind": "err", "text": "This link is invalid or expired."}
NOT_FOUND = {"kind": "err", "text": "Trade not found."}


def _render(
    request: Request,
    status_code: int,
    trade: Optional[Trade] = None,
    viewer: Viewer = ANONYMOUS,
    token: Optional[str] = None,
    banner: Optional[dict] = None,
    focus: Optional[str] = None,
):
    actions = []
    if trade is not None and viewer.is_known:
        actions = [a.value.lower() for a in allowed_actions(trade.status, viewer.party)]

    def form_action(action: str) -> str:
        path = f"/t/{trade.id}/{action}"
        return f"{path}?{urlencode({'token': token})}" if token else path

    return templates.TemplateResponse(
        request,
        "trade_page.html.j2",
        {
            "trade": trade if viewer.is_known else None,
            "viewer": viewer,
            "actions": actions,
            "banner": banner,
            "focus": focus,
            "form_action": form_action,
        },
        status_code=status_code,
    )


def _run_action(
    db: Session,
    background_tasks: BackgroundTasks,
    notifier: Notifier,
    trade: Trade,
    viewer: Viewer,
    action: Action,
    terms: Optional[dict] = None,
    version: Optional[int] = None,
) -> tuple[Optional[Trade], dict, int]:
    """Apply the action as whatever role the viewer resolved to."""
    trade_id = trade.id
    try:
        trade, transition = trade_service.apply_action(
            db, trade, viewer, viewer.role, action, terms=terms, expected_version=version
        )
    except MarketError as e:
        trade = db.query(Trade).filter(Trade.id == trade_id).first()
        if trade is None:
            return None, NOT_FOUND, 404
        return trade, {"kind": "err", "text": e.message}, e.status_code

    background_tasks.add_task(
        notifier.notify_counterparty, trade.id, transition.actor.other.role, transition.event_kind
    )
    return trade, {"kind": "ok", "text": SUCCESS_TEXT[action]}, 200


def _load(db: Session, trade_id: str, user: Optional[User], token: Optional[str]):
    trade = db.query(Trade).filter(Trade.id == trade_id).first()
    if not trade:
        return None, ANONYMOUS
    return trade, resolve_viewer(trade, user.id if user else None, token)


@router.get("/t/{trade_id}", include_in_schema=False)
def trade_page(
    request: Request,
    trade_id: str,
    background_tasks: BackgroundTasks,
    token: Optional[str] = None,
    action: Optional[str] = None,
    role: Optional[str] = None,
    price_per_af: Optional[str] = None,
    volume_af: Optional[str] = None,
    window_label: Optional[str] = None,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    notifier: Notifier = Depends(get_notifier),
):
    """Show a trade to one of its parties, running `action` on load if given.

    `role` is only a hint carried in emailed links; the resolved role decides.
    """
    trade, viewer = _load(db, trade_id, user, token)
    if trade is None:
        return _render(request, 404, banner=NOT_FOUND)
    if not viewer.is_known:
        return _render(request, 403, banner=INVALID_LINK)

    action = (action or "").lower()
    banner, focus, status_code = None, None, 200
    if action in PAGE_ACTIONS:
        if action == "counter" and not (price_per_af and volume_af):
            focus = "counter"
        else:
            terms = None
            if action == "counter":
                terms = {"price_per_af": price_per_af, "volume_af": volume_af, "window_label": window_label}
            trade, banner, status_code = _run_action(
                db, background_tasks, notifier, trade, viewer, PAGE_ACTIONS[action], terms
            )
    return _render(request, status_code, trade, viewer, token, banner, focus)


@router.post("/t/{trade_id}/{action}", include_in_schema=False)
def trade_page_action(
    request: Request,
    trade_id: str,
    action: str,
    background_tasks: BackgroundTasks,
    token: Optional[str] = None,
    price_per_af: Optional[str] = Form(None),
    volume_af: Optional[str] = Form(None),
    window_label: Optional[str] = Form(None),
    version: Optional[int] = Form(None),
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
    notifier: Notifier = Depends(get_notifier),
):
    """Form posts from the trade page."""
    trade, viewer = _load(db, trade_id, user, token)
    if trade is None:
        return _render(request, 404, banner=NOT_FOUND)
    if not viewer.is_known:
        return _render(request, 403, banner=INVALID_LINK)

    page_action = PAGE_ACTIONS.get(action.lower())
    if page_action is None:
        return _render(request, 400, trade, viewer, token, {"kind": "err", "text": "Unknown action."})

    terms = None
    if page_action is Action.COUNTER:
        terms = {"price_per_af": price_per_af, "volume_af": volume_af, "window_label": window_label}
    trade, banner, status_code = _run_action(
        db, background_tasks, notifier, trade, viewer, page_action, terms, version
    )
    return _render(request, status_code, trade, viewer, token, banner)
