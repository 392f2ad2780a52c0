"""Jinja2 environment shared by the HTML pages and the outbound emails."""

from pathlib import Path
from urllib.parse import urlencode

from fastapi.templating import Jinja2Templates
from jinja2 import select_autoescape

from watermarket.config import settings

TEMPLATES_DIR = Path(__file__).parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
# Templates are named *.html.j2, which the default extension check misses
templates.env.autoescape = select_autoescape(enabled_extensions=("html", "html.j2"))


def money(cents) -> str:
    """Format integer cents as dollars, e.g. 55000 -> $550.00."""
    if cents is None:
        return "—"
    return f"${cents / 100:,.2f}"


def app_url(path: str = "/", **params) -> str:
    """Absolute app URL for links that leave the server (emails, redirects)."""
    base = settings.APP_URL.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    query = {k: v for k, v in params.items() if v not in (None, "")}
    return f"{base}{suffix}?{urlencode(query)}" if query else f"{base}{suffix}"


templates.env.filters["money"] = money
templates.env.globals["app_url"] = app_url


def render(template_name: str, **context) -> str:
    """Render a template outside of a request (emails)."""
    return templates.env.get_template(template_name).render(**context)
