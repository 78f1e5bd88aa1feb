import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from ticketledger import finance
from ticketledger.database import Database, STATUS_CONFIRMED, date_range_bounds
from ticketledger.models import (
    Booking,
    Category,
    Event,
    EventSummary,
    SavedReport,
    SeatPricing,
    StateSummary,
    TransactionItem,
    Venue,
)

logger = logging.getLogger(__name__)

REPORT_OVERALL = "overall"
REPORT_EVENT = "event"
REPORT_ITEMIZED = "itemized"
REPORT_INDIVIDUAL = "individual_customer_bookings"
REPORT_TYPES = (REPORT_OVERALL, REPORT_EVENT, REPORT_ITEMIZED)


@dataclass
class ActionResult:
    success: bool
    message: str
    payload: Optional[Any] = None


class VenueService:
    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, name: str, city: str, state: str, address: str = "") -> int:
        return self.db.create_venue(name=name, city=city, state=state, address=address)

    def get(self, venue_id: int) -> Optional[Venue]:
        return self.db.get_venue(venue_id)

    def list(self, search: Optional[str] = None) -> List[Venue]:
        return self.db.list_venues(search=search)

    def update(self, venue_id: int, updates: Dict[str, Any]) -> ActionResult:
        ok, message = self.db.set_venue_fields(venue_id, updates)
        return ActionResult(ok, message, self.db.get_venue(venue_id) if ok else None)

    def delete(self, venue_id: int) -> ActionResult:
        ok, message = self.db.delete_venue(venue_id)
        return ActionResult(ok, message)

    def create_category(self, name: str, description: str = "") -> int:
        return self.db.create_category(name=name, description=description)

    def list_categories(self) -> List[Category]:
        return self.db.list_categories()

    def delete_category(self, category_id: int) -> ActionResult:
        ok, message = self.db.delete_category(category_id)
        return ActionResult(ok, message)


class EventService:
    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, name: str, start_datetime: str, **fields: Any) -> int:
        return self.db.create_event(name=name, start_datetime=start_datetime, **fields)

    def create_series(self, **fields: Any) -> List[int]:
        return self.db.create_event_series(**fields)

    def get(self, event_id: int) -> Optional[Event]:
        return self.db.get_event(event_id)

    def list(self, status: Optional[str] = None) -> List[Event]:
        return self.db.list_events(status=status)

    def update(self, event_id: int, updates: Dict[str, Any]) -> ActionResult:
        ok, message = self.db.set_event_fields(event_id, updates)
        return ActionResult(ok, message, self.db.get_event(event_id) if ok else None)

    def delete(self, event_id: int) -> ActionResult:
        ok, message, counts = self.db.delete_event(event_id)
        return ActionResult(ok, message, counts)

    def set_pricing(self, event_id: int, **fields: Any) -> int:
        return self.db.upsert_seat_pricing(event_id=event_id, **fields)

    def list_pricing(self, event_id: int) -> List[Dict[str, Any]]:
        items = []
        for pricing in self.db.list_seat_pricing(event_id):
            payload = asdict(pricing)
            payload["calculated"] = finance.resolve_seat_pricing(pricing)
            items.append(payload)
        return items

    def stats(self, sort_by: str = "date", search: Optional[str] = None, limit: int = 30):
        return self.db.list_event_stats(sort_by=sort_by, search=search, limit=limit)


class BookingService:
    def __init__(self, db: Database, home_state: str = finance.HOME_STATE, default_rate: float = finance.DEFAULT_COMMISSION_RATE) -> None:
        self.db = db
        self.home_state = home_state
        self.default_rate = default_rate

    def create(self, event_id: int, quantity: int, total_price: float, **fields: Any) -> Booking:
        return self.db.create_booking(event_id=event_id, quantity=quantity, total_price=total_price, **fields)

    def get(self, booking_id: int) -> Optional[Booking]:
        return self.db.get_booking(booking_id)

    def list(self, **filters: Any) -> List[Booking]:
        return self.db.list_bookings(**filters)

    def confirm(self, booking_id: int) -> ActionResult:
        ok, message, booking = self.db.confirm_booking(
            booking_id,
            home_state=self.home_state,
            default_rate=self.default_rate,
        )
        return ActionResult(ok, message, booking)

    def cancel(self, booking_id: int) -> ActionResult:
        ok, message, booking = self.db.cancel_booking(booking_id)
        return ActionResult(ok, message, booking)

    def invoice_number(self, booking: Booking) -> str:
        return self.db.invoice_number(booking)


class ReportService:
    def __init__(self, db: Database, home_state: str = finance.HOME_STATE, default_rate: float = finance.DEFAULT_COMMISSION_RATE) -> None:
        self.db = db
        self.home_state = home_state
        self.default_rate = default_rate

    def generate(
        self,
        report_type: str,
        start: str,
        end: str,
        event_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Overall, event-wise or itemized report over per-ticket transactions.

        Raises ``ValueError`` for bad input and ``LookupError`` when the event
        or any transaction data is missing.
        """
        if report_type not in REPORT_TYPES:
            raise ValueError(f"Unknown report type: {report_type}")
        date_range_bounds(start, end)
        if report_type == REPORT_EVENT and event_id is None:
            raise ValueError("Please select an event for event-wise report")

        event_name = None
        if report_type == REPORT_EVENT:
            event = self.db.get_event(event_id)
            if not event:
                raise LookupError("Event not found")
            event_name = event.name

        transactions = self.db.list_financial_transactions(
            start,
            end,
            event_id=event_id if report_type == REPORT_EVENT else None,
        )
        if not transactions:
            if report_type == REPORT_EVENT:
                raise LookupError(
                    f'No financial transaction data found for event "{event_name}" in the selected date range.'
                )
            raise LookupError("No financial transaction data found for the selected date range.")

        overall = finance.aggregate_transactions(transactions, self.home_state)
        names = self.db.event_names(sorted({tx.event_id for tx in transactions}))
        items = [
            TransactionItem(
                id=tx.id,
                event_id=tx.event_id,
                event_name=names.get(tx.event_id, "Unknown Event"),
                ticket_price=tx.ticket_price,
                convenience_fee=tx.convenience_fee,
                commission=tx.commission,
                actual_commission=tx.actual_commission,
                gst_on_actual_commission=tx.gst_on_actual_commission,
                gst_on_convenience_base_fee=tx.gst_on_convenience_base_fee,
                total_amount=tx.ticket_price + tx.convenience_fee,
                customer_state=tx.customer_state or finance.UNKNOWN_STATE,
                event_state=tx.event_state or finance.UNKNOWN_STATE,
                created_at=tx.created_at,
            )
            for tx in transactions
        ]

        result: Dict[str, Any] = {
            "report_type": report_type,
            "start": start,
            "end": end,
            "overall": None,
            "state_wise": [],
            "event_wise": None,
            "items": [asdict(item) for item in items],
        }
        if report_type == REPORT_EVENT:
            summary = EventSummary(**asdict(overall), event_id=int(event_id), event_name=event_name)
            result["event_wise"] = asdict(summary)
        else:
            result["overall"] = asdict(overall)
            result["state_wise"] = [asdict(row) for row in self._state_wise(transactions)]

        logger.info(
            "Generated %s financial report for %s..%s with %s transactions",
            report_type,
            start,
            end,
            len(transactions),
        )
        return result

    def _state_wise(self, transactions) -> List[StateSummary]:
        groups: Dict[str, list] = {}
        for tx in transactions:
            groups.setdefault(tx.customer_state or finance.UNKNOWN_STATE, []).append(tx)
        rows = []
        for state, state_transactions in groups.items():
            summary = finance.aggregate_transactions(state_transactions, self.home_state)
            rows.append(StateSummary(**asdict(summary), state=state))
        return rows

    def individual_bookings(self, start: str, end: str) -> Dict[str, Any]:
        bookings = self.db.list_bookings(start=start, end=end, status=STATUS_CONFIRMED)
        if not bookings:
            raise LookupError("No booking data found for the selected date range.")

        names = self.db.event_names(sorted({b.event_id for b in bookings}))
        pricing_cache: Dict[int, Optional[SeatPricing]] = {}
        rows = []
        for booking in bookings:
            if booking.event_id not in pricing_cache:
                pricing_cache[booking.event_id] = self.db.active_pricing(booking.event_id)
            rows.append(
                finance.decompose_booking(
                    booking,
                    pricing_cache[booking.event_id],
                    event_name=names.get(booking.event_id, "Unknown Event"),
                    invoice_number=self.db.invoice_number(booking),
                    home_state=self.home_state,
                    default_rate=self.default_rate,
                )
            )
        totals = finance.sum_booking_metrics(rows)
        logger.info("Generated individual bookings report for %s..%s with %s bookings", start, end, len(rows))
        return {
            "report_type": REPORT_INDIVIDUAL,
            "start": start,
            "end": end,
            "bookings": [asdict(row) for row in rows],
            "totals": totals,
        }

    def save(
        self,
        name: str,
        report_type: str,
        start: str,
        end: str,
        data: Dict[str, Any],
        filters: Optional[Dict[str, Any]] = None,
        created_by: Optional[int] = None,
    ) -> ActionResult:
        clean_name = (name or "").strip()
        if not clean_name:
            return ActionResult(False, "Please enter a report name")
        if not _has_report_data(data):
            return ActionResult(False, "No report data to save")
        try:
            lower, _upper = date_range_bounds(start, end)
        except ValueError as exc:
            return ActionResult(False, str(exc))
        report_id = self.db.save_report(
            report_name=clean_name,
            report_type=report_type,
            date_range_start=lower,
            date_range_end=f"{end}T23:59:59",
            report_data=data,
            filters_applied=filters or {"reportType": report_type},
            created_by=created_by,
        )
        logger.info("Saved %s report %r as #%s", report_type, clean_name, report_id)
        return ActionResult(True, "Report saved successfully", report_id)

    def list_saved(self, report_type: Optional[str] = None, limit: int = 50) -> List[SavedReport]:
        return self.db.list_reports(report_type=report_type, limit=limit)

    def get_saved(self, report_id: int) -> Optional[SavedReport]:
        return self.db.get_report(report_id)

    def delete_saved(self, report_id: int) -> ActionResult:
        if not self.db.delete_report(report_id):
            return ActionResult(False, "Report not found.")
        return ActionResult(True, "Report deleted.")


def _has_report_data(data: Optional[Dict[str, Any]]) -> bool:
    if not data:
        return False
    for key in ("overall", "event_wise", "items", "bookings"):
        if data.get(key):
            return True
    return False
