from dataclasses import dataclass
from typing import Optional


@dataclass
class Venue:
    id: int
    name: str
    city: str
    state: str
    address: str


@dataclass
class Category:
    id: int
    name: str
    description: str


@dataclass
class Event:
    id: int
    name: str
    start_datetime: str
    venue_id: Optional[int]
    category_id: Optional[int]
    description: str
    status: str
    recurrence_type: Optional[str]
    series_code: str


@dataclass
class SeatPricing:
    id: int
    event_id: int
    seat_category: str
    base_price: float
    convenience_fee: float
    commission: float
    convenience_fee_type: Optional[str]
    convenience_fee_value: Optional[float]
    commission_type: Optional[str]
    commission_value: Optional[float]
    total_tickets: int
    available_tickets: int
    is_active: int


@dataclass
class Booking:
    id: int
    event_id: int
    customer_name: str
    customer_email: str
    customer_phone: str
    customer_state: Optional[str]
    quantity: int
    total_price: float
    convenience_fee: float
    seat_numbers: str
    status: str
    created_at: str


@dataclass
class FinancialTransaction:
    id: int
    booking_id: int
    event_id: int
    ticket_price: float
    convenience_fee: float
    convenience_base_fee: float
    gst_on_convenience_base_fee: float
    commission: float
    actual_commission: float
    gst_on_actual_commission: float
    reimbursable_ticket_price: float
    customer_state: str
    event_state: str
    is_wb_customer: int
    is_wb_event: int
    created_at: str


@dataclass
class SavedReport:
    id: int
    report_name: str
    report_type: str
    date_range_start: str
    date_range_end: str
    report_data: str
    filters_applied: str
    created_by: Optional[int]
    created_at: str


@dataclass
class TicketAmounts:
    """Per-ticket amounts before the GST split."""

    ticket_price: float
    convenience_fee: float
    commission: float


@dataclass
class BookingMetrics:
    booking_id: int
    invoice_number: str
    customer_state: str
    event_name: str
    ticket_count: int
    total_sale_value: float
    total_ticket_price: float
    total_convenience_fee: float
    convenience_fee_base: float
    convenience_fee_gst: float
    total_commission: float
    commission_base: float
    commission_gst: float
    reimbursable_ticket_price: float
    total_gst_wb: float
    total_gst_other: float
    cgst: float
    sgst: float
    igst: float
    booking_date: str


@dataclass
class FinancialSummary:
    total_sale_value: float = 0.0
    total_ticket_price: float = 0.0
    total_commission: float = 0.0
    total_commission_base: float = 0.0
    total_actual_commission: float = 0.0
    total_gst_on_actual_commission: float = 0.0
    total_gst_on_actual_commission_wb: float = 0.0
    total_gst_on_actual_commission_other: float = 0.0
    total_reimbursable_ticket_price: float = 0.0
    total_convenience_fee: float = 0.0
    total_convenience_base_fee: float = 0.0
    total_gst_on_convenience_base_fee: float = 0.0
    total_gst_on_convenience_base_fee_wb: float = 0.0
    total_gst_on_convenience_base_fee_other: float = 0.0
    total_gst_wb: float = 0.0
    total_gst_other: float = 0.0
    total_cgst: float = 0.0
    total_sgst: float = 0.0
    total_igst: float = 0.0


@dataclass
class StateSummary(FinancialSummary):
    state: str = "Unknown"


@dataclass
class EventSummary(FinancialSummary):
    event_id: int = 0
    event_name: str = "Unknown Event"


@dataclass
class TransactionItem:
    id: int
    event_id: int
    event_name: str
    ticket_price: float
    convenience_fee: float
    commission: float
    actual_commission: float
    gst_on_actual_commission: float
    gst_on_convenience_base_fee: float
    total_amount: float
    customer_state: str
    event_state: str
    created_at: str
    quantity: int = 1
