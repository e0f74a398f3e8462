# comanda/receipts/rendering.py
from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from jinja2 import Environment, BaseLoader

from ..config import CONFIG, ReceiptConfig
from ..models import cents_to_decimal
from ..settlement import ReceiptSnapshot

log = logging.getLogger("comanda.receipts")

DEFAULT_TEMPLATE = (
    "{{ cfg.header | center(width) }}\n"
    "{{ ('Mesa ' ~ table) | center(width) }}\n"
    "{{ closed_at.strftime('%d/%m/%Y %H:%M') | center(width) }}\n"
    "{{ '-' * width }}\n"
    "{% for l in lines %}"
    "{{ row('%dx %s' % (l.quantity, l.product_name), money(l.line_total_cents)) }}\n"
    "{% if l.notes %}  obs: {{ l.notes }}\n{% endif %}"
    "{% endfor %}"
    "{{ '-' * width }}\n"
    "{{ row('TOTAL', money(total_cents)) }}\n"
    "{{ row('Pagamento', paid_method) }}\n"
    "{{ '-' * width }}\n"
    "{% if cfg.footer %}{{ cfg.footer | center(width) }}\n{% endif %}"
)


def render_jinja(body: str, ctx: Dict[str, Any]) -> str:
    env = Environment(loader=BaseLoader(), autoescape=False, trim_blocks=True, lstrip_blocks=True)
    return env.from_string(body).render(**ctx)


def _ctx(snapshot: ReceiptSnapshot, cfg: ReceiptConfig) -> Dict[str, Any]:
    width = max(16, int(cfg.width_chars))

    def money(cents: int) -> str:
        return f"{cfg.currency} {cents_to_decimal(cents)}"

    def row(left: str, right: str) -> str:
        space = width - len(right) - 1
        if len(left) > space:
            left = left[: max(0, space - 1)] + "…"
        return f"{left:<{space}} {right}"

    return {
        "cfg": cfg,
        "width": width,
        "table": snapshot.table_label or "-",
        "closed_at": snapshot.closed_at,
        "lines": snapshot.lines,
        "total_cents": snapshot.total_cents,
        "paid_method": snapshot.paid_method.value,
        "order_id": snapshot.order_id,
        "money": money,
        "row": row,
    }


def render_receipt(
    snapshot: ReceiptSnapshot,
    template: Optional[str] = None,
    cfg: Optional[ReceiptConfig] = None,
) -> str:
    """Plain-text receipt for a settled order."""
    cfg = cfg or CONFIG.receipt
    return render_jinja(template or DEFAULT_TEMPLATE, _ctx(snapshot, cfg))
