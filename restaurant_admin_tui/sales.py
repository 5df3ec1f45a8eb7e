"""Sales aggregation over order line items.

A line item is one product on one order. The location sales routes of the
backend return rows already summed per product; those are read as undated
line items and aggregated the same way, so every report shares one
ordering and one name fallback.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

TOP_PRODUCTS = 12


def parse_day(value: Any) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` string. Blank or malformed input gives None."""
    text = str(value or "").strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        logger.debug("Ignoring malformed day %r", text)
        return None


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp into a naive local datetime.

    Raises:
        ValueError: if the value is not a timestamp
    """
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value or "").strip()
        if not text:
            raise ValueError("empty timestamp")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is not None:
        moment = moment.astimezone().replace(tzinfo=None)
    return moment


def day_bounds(from_day: Optional[date], to_day: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """``[from 00:00, (to + 1 day) 00:00)`` in local time; missing bounds stay open."""
    start = datetime.combine(from_day, time.min) if from_day else None
    end = datetime.combine(to_day + timedelta(days=1), time.min) if to_day else None
    return start, end


@dataclass(frozen=True)
class SaleLine:
    product_id: int
    name: str
    qty: float
    amount: float
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SaleLine":
        """Build a line from an order item or from a per-product sales row.

        Order items carry ``menu_id``, ``nombre_snapshot``, ``line_total``
        and ``created_at``. The location sales routes send rows already
        summed per product as ``product_id``, ``name`` and ``revenue``,
        without a timestamp.
        """
        created_at = row.get("created_at")
        return cls(
            product_id=int(_first(row, "menu_id", "product_id") or 0),
            name=str(_first(row, "nombre_snapshot", "name") or "").strip(),
            qty=float(row.get("qty") or 0),
            amount=float(_first(row, "line_total", "revenue") or 0),
            created_at=None if created_at is None else parse_timestamp(created_at),
        )


def _first(row: Dict[str, Any], *names: str) -> Any:
    for name in names:
        if row.get(name) is not None:
            return row[name]
    return None


def parse_lines(rows: Iterable[Dict[str, Any]]) -> List[SaleLine]:
    lines = []
    for row in rows:
        try:
            lines.append(SaleLine.from_row(row))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping malformed sale line %r: %s", row, exc)
    return lines


@dataclass
class ProductSales:
    product_id: int
    name: str
    qty: float = 0
    revenue: float = 0


@dataclass
class SalesReport:
    qty: float = 0
    revenue: float = 0
    items: List[ProductSales] = field(default_factory=list)

    def top(self, limit: int = TOP_PRODUCTS) -> List[ProductSales]:
        return self.items[:limit]


def _in_window(moment: Optional[datetime], start: Optional[datetime], end: Optional[datetime]) -> bool:
    if start is None and end is None:
        return True
    # undated rows cannot be placed in a bounded window
    if moment is None:
        return False
    return (start is None or moment >= start) and (end is None or moment < end)


def aggregate_between(
    lines: Iterable[SaleLine],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> SalesReport:
    """Aggregate lines with ``start <= created_at < end``.

    Products are ordered by revenue, then quantity (both descending), then
    product id so ties always come out the same way.
    """
    report = SalesReport()
    by_product: Dict[int, ProductSales] = {}
    for line in lines:
        if not _in_window(line.created_at, start, end):
            continue
        report.qty += line.qty
        report.revenue += line.amount

        product = by_product.get(line.product_id)
        if product is None:
            product = by_product[line.product_id] = ProductSales(line.product_id, line.name)
        elif not product.name:
            product.name = line.name
        product.qty += line.qty
        product.revenue += line.amount

    for product in by_product.values():
        if not product.name:
            product.name = f"Product {product.product_id}"
    report.items = sorted(
        by_product.values(),
        key=lambda p: (-p.revenue, -p.qty, p.product_id),
    )
    return report


def aggregate_sales(
    lines: Iterable[SaleLine],
    from_day: Optional[str] = None,
    to_day: Optional[str] = None,
) -> SalesReport:
    """Aggregate over an inclusive day range given as ``YYYY-MM-DD`` strings."""
    start, end = day_bounds(parse_day(from_day), parse_day(to_day))
    return aggregate_between(lines, start, end)


def report_from_payload(payload: Dict[str, Any]) -> SalesReport:
    """Report for a backend sales response shaped ``{totals, items}``.

    The per-product rows go back through :func:`aggregate_between`, which
    gives them the same ordering and name fallback as local aggregation.
    The server's totals are kept when present; the global summary route
    sends totals without any rows.
    """
    report = aggregate_between(parse_lines(payload.get("items") or []))
    totals = payload.get("totals")
    if isinstance(totals, dict):
        report.qty = float(totals.get("qty") or 0)
        report.revenue = float(totals.get("revenue") or 0)
    return report


def dashboard_windows(today: Optional[date] = None) -> List[Tuple[str, date, date]]:
    today = today or date.today()
    return [
        ("Today", today, today),
        ("Last 7 days", today - timedelta(days=6), today),
        ("Last 30 days", today - timedelta(days=29), today),
    ]


def format_money(value: float) -> str:
    return "$ " + f"{value:,.0f}".replace(",", ".")


def format_qty(value: float) -> str:
    return f"{value:,.0f}".replace(",", ".")


@dataclass(frozen=True)
class Shift:
    """An open cash-register shift at one store."""

    id: Any
    store_id: str
    opened_at: Optional[datetime]
    admin_name: str = ""
    sede_name: str = ""
    notes: str = ""
    expires_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Shift":
        return cls(
            id=row.get("id"),
            store_id=str(row.get("store_id") or "").strip(),
            opened_at=_optional_timestamp(row.get("opened_at")),
            admin_name=str(row.get("admin_name") or ""),
            sede_name=str(row.get("sede_name") or ""),
            notes=str(row.get("notes") or ""),
            expires_at=_optional_timestamp(row.get("expires_at")),
        )

    def window(self, now: Optional[datetime] = None) -> Tuple[Optional[datetime], datetime]:
        """Sales window of the shift so far: ``[opened_at, now)``."""
        return self.opened_at, now or datetime.now()


def _optional_timestamp(value: Any) -> Optional[datetime]:
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def shifts_by_store(rows: Iterable[Dict[str, Any]]) -> Dict[str, Shift]:
    """Index open shifts by store id. Rows without a store are dropped."""
    shifts = {}
    for row in rows:
        shift = Shift.from_row(row)
        if shift.store_id:
            shifts[shift.store_id] = shift
    return shifts
