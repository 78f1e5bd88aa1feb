"""Ticket price decomposition and GST routing.

Every amount the platform collects on top of the organiser's ticket price
(convenience fee, commission) is GST-inclusive at 18%, so it is split into a
taxable base of 84.745% and a GST remainder.  The GST is charged as CGST + SGST
for intra-state supplies (home state) and as IGST otherwise.
"""

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ticketledger.models import (
    Booking,
    BookingMetrics,
    FinancialSummary,
    FinancialTransaction,
    SeatPricing,
    TicketAmounts,
)

GST_BASE_RATIO = 0.84745
GST_RATIO = 0.15255
HOME_STATE = "West Bengal"
DEFAULT_COMMISSION_RATE = 0.10
UNKNOWN_STATE = "Unknown"

FEE_FIXED = "fixed"
FEE_PERCENTAGE = "percentage"
FEE_TYPES = {FEE_FIXED, FEE_PERCENTAGE}


def _num(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def fee_amount(base_price: float, fee_type: Optional[str], fee_value: Optional[float]) -> float:
    """Per-ticket fee for a fixed or percentage fee configuration."""
    kind = (fee_type or FEE_FIXED).strip().lower()
    if kind not in FEE_TYPES:
        raise ValueError(f"Unknown fee type: {fee_type}")
    value = _num(fee_value)
    if kind == FEE_PERCENTAGE:
        return (float(base_price) * value) / 100
    return value


def split_gst_inclusive(amount: float) -> Tuple[float, float]:
    """Split a GST-inclusive amount into ``(base, gst)``.

    The GST part is the remainder so that ``base + gst == amount``.
    """
    base = float(amount) * GST_BASE_RATIO
    return base, float(amount) - base


def is_home_state(state: Optional[str], home_state: str = HOME_STATE) -> bool:
    return (state or "") == home_state


def gst_breakdown(gst_amount: float, intra_state: bool) -> Dict[str, float]:
    if intra_state:
        return {
            "cgst": gst_amount / 2,
            "sgst": gst_amount / 2,
            "igst": 0.0,
            "gst_wb": gst_amount,
            "gst_other": 0.0,
        }
    return {
        "cgst": 0.0,
        "sgst": 0.0,
        "igst": gst_amount,
        "gst_wb": 0.0,
        "gst_other": gst_amount,
    }


def pricing_convenience_fee(pricing: SeatPricing, base_price: Optional[float] = None) -> float:
    base = pricing.base_price if base_price is None else base_price
    if pricing.convenience_fee_type:
        return fee_amount(base, pricing.convenience_fee_type, pricing.convenience_fee_value)
    return _num(pricing.convenience_fee)


def pricing_commission(pricing: SeatPricing, base_price: Optional[float] = None) -> float:
    base = pricing.base_price if base_price is None else base_price
    if pricing.commission_type:
        return fee_amount(base, pricing.commission_type, pricing.commission_value)
    return _num(pricing.commission)


def resolve_seat_pricing(pricing: SeatPricing) -> Dict[str, float]:
    base_price = _num(pricing.base_price)
    convenience_fee = pricing_convenience_fee(pricing, base_price)
    return {
        "base_price": base_price,
        "convenience_fee": convenience_fee,
        "total_price": base_price + convenience_fee,
        "commission": pricing_commission(pricing, base_price),
    }


def resolve_booking_commission(
    pricing: Optional[SeatPricing],
    ticket_total: float,
    quantity: int,
    default_rate: float = DEFAULT_COMMISSION_RATE,
) -> float:
    """Total commission for a booking.

    A stored per-ticket commission wins; then the commission type and value of
    the pricing; otherwise ``default_rate`` of the ticket total.
    """
    if pricing is not None and _num(pricing.commission) > 0:
        return _num(pricing.commission) * quantity
    if pricing is not None and pricing.commission_type and _num(pricing.commission_value):
        per_ticket_price = ticket_total / quantity
        return fee_amount(per_ticket_price, pricing.commission_type, pricing.commission_value) * quantity
    return ticket_total * default_rate


def parse_seat_numbers(raw: Any) -> List[Dict[str, Any]]:
    if not raw:
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return []
    if not isinstance(raw, list):
        return []
    return [seat for seat in raw if isinstance(seat, dict)]


def booking_date_label(created_at: str) -> str:
    try:
        return datetime.fromisoformat(created_at).date().isoformat()
    except (TypeError, ValueError):
        return created_at or ""


def decompose_booking(
    booking: Booking,
    pricing: Optional[SeatPricing],
    event_name: str,
    invoice_number: str,
    home_state: str = HOME_STATE,
    default_rate: float = DEFAULT_COMMISSION_RATE,
) -> BookingMetrics:
    """Break one booking into the A..K columns of the individual bookings report.

    A ticket price, B convenience fee, C/D its base and GST, F commission,
    G/H its base and GST, K reimbursable ticket price (A - F).  GST is routed
    by the customer's state only.
    """
    customer_state = booking.customer_state or UNKNOWN_STATE
    quantity = int(booking.quantity or 0) or 1
    total_price = _num(booking.total_price)
    convenience_fee = _num(booking.convenience_fee)

    ticket_price = total_price - convenience_fee
    convenience_base, convenience_gst = split_gst_inclusive(convenience_fee)
    commission = resolve_booking_commission(pricing, ticket_price, quantity, default_rate)
    commission_base, commission_gst = split_gst_inclusive(commission)

    intra_state = is_home_state(customer_state, home_state)
    on_commission = gst_breakdown(commission_gst, intra_state)
    on_convenience = gst_breakdown(convenience_gst, intra_state)

    return BookingMetrics(
        booking_id=booking.id,
        invoice_number=invoice_number,
        customer_state=customer_state,
        event_name=event_name or "Unknown Event",
        ticket_count=quantity,
        total_sale_value=total_price,
        total_ticket_price=ticket_price,
        total_convenience_fee=convenience_fee,
        convenience_fee_base=convenience_base,
        convenience_fee_gst=convenience_gst,
        total_commission=commission,
        commission_base=commission_base,
        commission_gst=commission_gst,
        reimbursable_ticket_price=ticket_price - commission,
        total_gst_wb=on_commission["gst_wb"] + on_convenience["gst_wb"],
        total_gst_other=on_commission["gst_other"] + on_convenience["gst_other"],
        cgst=on_commission["cgst"] + on_convenience["cgst"],
        sgst=on_commission["sgst"] + on_convenience["sgst"],
        igst=on_commission["igst"] + on_convenience["igst"],
        booking_date=booking_date_label(booking.created_at),
    )


METRIC_TOTAL_FIELDS = (
    "ticket_count",
    "total_sale_value",
    "total_ticket_price",
    "total_convenience_fee",
    "convenience_fee_base",
    "convenience_fee_gst",
    "total_commission",
    "commission_base",
    "commission_gst",
    "reimbursable_ticket_price",
    "total_gst_wb",
    "total_gst_other",
    "cgst",
    "sgst",
    "igst",
)


def sum_booking_metrics(rows: Iterable[BookingMetrics]) -> Dict[str, float]:
    totals: Dict[str, float] = {field: 0 for field in METRIC_TOTAL_FIELDS}
    for row in rows:
        for field in METRIC_TOTAL_FIELDS:
            totals[field] += getattr(row, field)
    return totals


def ticket_amounts(
    booking: Booking,
    pricing: Optional[SeatPricing],
    default_rate: float = DEFAULT_COMMISSION_RATE,
) -> List[TicketAmounts]:
    """Per-ticket price, convenience fee and commission for a booking.

    Seat bookings carry their own prices.  General admission bookings only
    store the inclusive total, so the base price is recovered from it using
    the event's fee configuration.
    """
    quantity = int(booking.quantity or 0) or 1
    seats = [seat for seat in parse_seat_numbers(booking.seat_numbers) if seat.get("price")]
    if seats:
        amounts = []
        for index in range(quantity):
            seat = seats[index] if index < len(seats) else seats[0]
            amounts.append(
                TicketAmounts(
                    ticket_price=_num(seat.get("price")),
                    convenience_fee=_num(seat.get("convenience_fee")),
                    commission=_num(seat.get("commission")),
                )
            )
        return amounts

    total_amount = _num(booking.total_price)
    if pricing is not None:
        fee_type = (pricing.convenience_fee_type or "").strip().lower()
        if fee_type == FEE_PERCENTAGE:
            rate = _num(pricing.convenience_fee_value) / 100
            base_price = total_amount / (1 + rate) / quantity
            convenience_fee = (total_amount - base_price * quantity) / quantity
        else:
            if fee_type:
                convenience_fee = fee_amount(0, fee_type, pricing.convenience_fee_value)
            else:
                convenience_fee = _num(pricing.convenience_fee)
            base_price = (total_amount - convenience_fee * quantity) / quantity
        commission = pricing_commission(pricing, base_price)
    else:
        convenience_fee = _num(booking.convenience_fee) / quantity
        base_price = (total_amount / quantity) - convenience_fee
        commission = base_price * default_rate

    return [TicketAmounts(base_price, convenience_fee, commission) for _ in range(quantity)]


def ticket_transactions(
    booking: Booking,
    pricing: Optional[SeatPricing],
    event_state: Optional[str],
    home_state: str = HOME_STATE,
    default_rate: float = DEFAULT_COMMISSION_RATE,
) -> List[FinancialTransaction]:
    """One unsaved transaction (``id == 0``) per ticket of a confirmed booking."""
    customer_state = booking.customer_state or UNKNOWN_STATE
    venue_state = event_state or UNKNOWN_STATE
    rows = []
    for amounts in ticket_amounts(booking, pricing, default_rate):
        convenience_base, convenience_gst = split_gst_inclusive(amounts.convenience_fee)
        actual_commission, commission_gst = split_gst_inclusive(amounts.commission)
        rows.append(
            FinancialTransaction(
                id=0,
                booking_id=booking.id,
                event_id=booking.event_id,
                ticket_price=amounts.ticket_price,
                convenience_fee=amounts.convenience_fee,
                convenience_base_fee=convenience_base,
                gst_on_convenience_base_fee=convenience_gst,
                commission=amounts.commission,
                actual_commission=actual_commission,
                gst_on_actual_commission=commission_gst,
                reimbursable_ticket_price=amounts.ticket_price - amounts.commission,
                customer_state=customer_state,
                event_state=venue_state,
                is_wb_customer=int(is_home_state(customer_state, home_state)),
                is_wb_event=int(is_home_state(venue_state, home_state)),
                created_at=booking.created_at,
            )
        )
    return rows


def aggregate_transactions(
    transactions: Iterable[FinancialTransaction],
    home_state: str = HOME_STATE,
) -> FinancialSummary:
    """Sum per-ticket transactions into report totals.

    A transaction is intra-state only when both the event venue and the
    customer are in the home state.
    """
    summary = FinancialSummary()
    for tx in transactions:
        ticket_price = _num(tx.ticket_price)
        convenience_fee = _num(tx.convenience_fee)
        commission = _num(tx.commission)
        gst_on_commission = _num(tx.gst_on_actual_commission)
        gst_on_convenience = _num(tx.gst_on_convenience_base_fee)

        summary.total_ticket_price += ticket_price
        summary.total_convenience_fee += convenience_fee
        summary.total_convenience_base_fee += _num(tx.convenience_base_fee)
        summary.total_commission += commission
        summary.total_commission_base += commission
        summary.total_actual_commission += _num(tx.actual_commission)
        summary.total_gst_on_actual_commission += gst_on_commission
        summary.total_gst_on_convenience_base_fee += gst_on_convenience
        summary.total_reimbursable_ticket_price += _num(tx.reimbursable_ticket_price)

        wb_event = bool(tx.is_wb_event) or is_home_state(tx.event_state, home_state)
        wb_customer = bool(tx.is_wb_customer) or is_home_state(tx.customer_state, home_state)
        total_gst = gst_on_commission + gst_on_convenience
        split = gst_breakdown(total_gst, wb_event and wb_customer)
        if wb_event and wb_customer:
            summary.total_gst_on_actual_commission_wb += gst_on_commission
            summary.total_gst_on_convenience_base_fee_wb += gst_on_convenience
        else:
            summary.total_gst_on_actual_commission_other += gst_on_commission
            summary.total_gst_on_convenience_base_fee_other += gst_on_convenience
        summary.total_gst_wb += split["gst_wb"]
        summary.total_gst_other += split["gst_other"]
        summary.total_cgst += split["cgst"]
        summary.total_sgst += split["sgst"]
        summary.total_igst += split["igst"]

    summary.total_sale_value = summary.total_ticket_price + summary.total_convenience_fee
    return summary
