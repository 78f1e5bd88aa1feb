import logging
import os
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ticketledger.config import Config, configure_logging
from ticketledger.database import Database
from ticketledger.services import (
    REPORT_INDIVIDUAL,
    BookingService,
    EventService,
    ReportService,
    VenueService,
)
from ticketledger.workbooks import (
    XLSX_MEDIA_TYPE,
    financial_report_filename,
    financial_report_workbook,
    individual_bookings_filename,
    individual_bookings_workbook,
    workbook_bytes,
)

CONFIG = Config.load()
configure_logging(CONFIG.log_level)
logger = logging.getLogger(__name__)

ADMIN_IDS = CONFIG.admin_ids
db = Database(CONFIG.database_path)
venues = VenueService(db)
events = EventService(db)
bookings = BookingService(db, home_state=CONFIG.home_state, default_rate=CONFIG.default_commission_rate)
reports = ReportService(db, home_state=CONFIG.home_state, default_rate=CONFIG.default_commission_rate)

app = FastAPI(title="Ticket Ledger Admin Server")


class AdminRequest(BaseModel):
    admin_id: Optional[int] = None


class VenueCreateRequest(AdminRequest):
    name: str
    city: str = ""
    state: str = ""
    address: str = ""


class VenueUpdateRequest(AdminRequest):
    venue_id: int
    updates: Dict[str, Any]


class VenueDeleteRequest(AdminRequest):
    venue_id: int


class CategoryCreateRequest(AdminRequest):
    name: str
    description: str = ""


class CategoryDeleteRequest(AdminRequest):
    category_id: int


class EventCreateRequest(AdminRequest):
    name: str
    start_datetime: str
    venue_id: Optional[int] = None
    category_id: Optional[int] = None
    description: str = ""


class PricingFields(BaseModel):
    seat_category: str = "General"
    base_price: float = Field(ge=0)
    convenience_fee: float = Field(default=0, ge=0)
    commission: float = Field(default=0, ge=0)
    convenience_fee_type: Optional[str] = None
    convenience_fee_value: Optional[float] = Field(default=None, ge=0)
    commission_type: Optional[str] = None
    commission_value: Optional[float] = Field(default=None, ge=0)
    total_tickets: int = Field(default=0, ge=0)
    is_active: bool = True


class EventSeriesRequest(AdminRequest):
    name: str
    start_date: str
    end_date: str
    pattern: str = "weekly"
    event_time: str = "19:00"
    venue_id: Optional[int] = None
    category_id: Optional[int] = None
    description: str = ""
    pricing: List[PricingFields] = []


class EventUpdateRequest(AdminRequest):
    event_id: int
    updates: Dict[str, Any]


class EventDeleteRequest(AdminRequest):
    event_id: int


class PricingSetRequest(AdminRequest, PricingFields):
    event_id: int


class BookingCreateRequest(AdminRequest):
    event_id: int
    quantity: int = Field(gt=0)
    total_price: float = Field(ge=0)
    convenience_fee: float = Field(default=0, ge=0)
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    customer_state: Optional[str] = None
    seat_numbers: List[Dict[str, Any]] = []
    created_at: Optional[str] = None


class BookingActionRequest(AdminRequest):
    booking_id: int


class ReportRequest(AdminRequest):
    report_type: str = "overall"
    start_date: str
    end_date: str
    event_id: Optional[int] = None


class IndividualReportRequest(AdminRequest):
    start_date: str
    end_date: str


class ReportSaveRequest(AdminRequest):
    report_name: str
    report_type: str = "overall"
    start_date: str
    end_date: str
    event_id: Optional[int] = None


class ReportDeleteRequest(AdminRequest):
    report_id: int


def _require_admin(admin_id: Optional[int]) -> int:
    if admin_id is None:
        raise HTTPException(status_code=401, detail="Missing admin_id.")
    if admin_id not in ADMIN_IDS:
        logger.warning("Rejected admin access for id %s", admin_id)
        raise HTTPException(status_code=403, detail="Admin access denied.")
    return admin_id


def _row_dict(row) -> Dict[str, Any]:
    return dict(row) if row is not None else {}


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, LookupError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _build_report(report_type: str, start: str, end: str, event_id: Optional[int]) -> Dict[str, Any]:
    try:
        if report_type == REPORT_INDIVIDUAL:
            return reports.individual_bookings(start, end)
        return reports.generate(report_type, start, end, event_id=event_id)
    except (LookupError, ValueError) as exc:
        raise _http_error(exc) from exc


def _xlsx_response(workbook, filename: str) -> StreamingResponse:
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(workbook_bytes(workbook), media_type=XLSX_MEDIA_TYPE, headers=headers)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/admin/dashboard")
def admin_dashboard(admin_id: Optional[int] = None) -> Dict[str, Any]:
    _require_admin(admin_id)
    return {"stats": db.dashboard_totals()}


@app.get("/api/admin/venues")
def admin_venues(admin_id: Optional[int] = None, search: Optional[str] = None) -> Dict[str, Any]:
    _require_admin(admin_id)
    return {"items": [asdict(v) for v in venues.list(search=search)]}


@app.post("/api/admin/venue/create")
def admin_venue_create(payload: VenueCreateRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    try:
        venue_id = venues.create(payload.name, payload.city, payload.state, payload.address)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "venue": asdict(venues.get(venue_id))}


@app.post("/api/admin/venue/update")
def admin_venue_update(payload: VenueUpdateRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    result = venues.update(payload.venue_id, payload.updates)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return {"ok": True, "message": result.message, "venue": asdict(result.payload)}


@app.post("/api/admin/venue/delete")
def admin_venue_delete(payload: VenueDeleteRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    result = venues.delete(payload.venue_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return {"ok": True, "message": result.message}


@app.get("/api/admin/categories")
def admin_categories(admin_id: Optional[int] = None) -> Dict[str, Any]:
    _require_admin(admin_id)
    return {"items": [asdict(c) for c in venues.list_categories()]}


@app.post("/api/admin/category/create")
def admin_category_create(payload: CategoryCreateRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    try:
        category_id = venues.create_category(payload.name, payload.description)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"ok": True, "category_id": category_id}


@app.post("/api/admin/category/delete")
def admin_category_delete(payload: CategoryDeleteRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    result = venues.delete_category(payload.category_id)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.message)
    return {"ok": True, "message": result.message}


@app.get("/api/admin/events")
def admin_events(admin_id: Optional[int] = None, status: Optional[str] = None) -> Dict[str, Any]:
    _require_admin(admin_id)
    return {"items": [asdict(e) for e in events.list(status=status)]}


@app.get("/api/admin/event_stats")
def admin_event_stats(
    admin_id: Optional[int] = None,
    sort_by: str = "date",
    search: Optional[str] = None,
    limit: int = 30,
) -> Dict[str, Any]:
    _require_admin(admin_id)
    return {"items": [_row_dict(r) for r in events.stats(sort_by=sort_by, search=search, limit=limit)]}


@app.post("/api/admin/event/create")
def admin_event_create(payload: EventCreateRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    try:
        event_id = events.create(
            payload.name,
            payload.start_datetime.strip(),
            venue_id=payload.venue_id,
            category_id=payload.category_id,
            description=payload.description,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "message": "Event created.", "event": asdict(events.get(event_id))}


@app.post("/api/admin/event/create_series")
def admin_event_create_series(payload: EventSeriesRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    try:
        event_ids = events.create_series(
            name=payload.name,
            start_date=payload.start_date,
            end_date=payload.end_date,
            pattern=payload.pattern,
            event_time=payload.event_time,
            venue_id=payload.venue_id,
            category_id=payload.category_id,
            description=payload.description,
            pricing_rows=[row.model_dump() for row in payload.pricing],
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "message": f"Created {len(event_ids)} events.", "event_ids": event_ids}


@app.post("/api/admin/event/update")
def admin_event_update(payload: EventUpdateRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    result = events.update(payload.event_id, payload.updates)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return {"ok": True, "message": result.message, "event": asdict(result.payload)}


@app.post("/api/admin/event/delete")
def admin_event_delete(payload: EventDeleteRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    result = events.delete(payload.event_id)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.message)
    return {"ok": True, "message": result.message, "removed": result.payload}


@app.get("/api/admin/pricing")
def admin_pricing(event_id: int, admin_id: Optional[int] = None) -> Dict[str, Any]:
    _require_admin(admin_id)
    return {"items": events.list_pricing(event_id)}


@app.post("/api/admin/pricing/set")
def admin_pricing_set(payload: PricingSetRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    fields = payload.model_dump(exclude={"admin_id", "event_id"})
    try:
        pricing_id = events.set_pricing(payload.event_id, **fields)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "pricing_id": pricing_id, "items": events.list_pricing(payload.event_id)}


@app.get("/api/admin/bookings")
def admin_bookings(
    admin_id: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    status: Optional[str] = None,
    event_id: Optional[int] = None,
    limit: int = 100,
) -> Dict[str, Any]:
    _require_admin(admin_id)
    try:
        rows = bookings.list(start=start_date, end=end_date, status=status, event_id=event_id, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    items = []
    for booking in rows:
        payload = asdict(booking)
        payload["invoice_number"] = bookings.invoice_number(booking)
        items.append(payload)
    return {"items": items}


@app.post("/api/admin/booking/create")
def admin_booking_create(payload: BookingCreateRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    fields = payload.model_dump(exclude={"admin_id", "event_id", "quantity", "total_price"})
    try:
        booking = bookings.create(payload.event_id, payload.quantity, payload.total_price, **fields)
    except ValueError as exc:
        text = str(exc)
        status_code = 404 if text == "Event not found" else 400
        raise HTTPException(status_code=status_code, detail=text) from exc
    return {"ok": True, "booking": asdict(booking)}


@app.post("/api/admin/booking/confirm")
def admin_booking_confirm(payload: BookingActionRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    result = bookings.confirm(payload.booking_id)
    if not result.success:
        raise HTTPException(status_code=409 if result.payload else 404, detail=result.message)
    return {"ok": True, "message": result.message, "booking": asdict(result.payload)}


@app.post("/api/admin/booking/cancel")
def admin_booking_cancel(payload: BookingActionRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    result = bookings.cancel(payload.booking_id)
    if not result.success:
        raise HTTPException(status_code=409 if result.payload else 404, detail=result.message)
    return {"ok": True, "message": result.message, "booking": asdict(result.payload)}


@app.post("/api/admin/reports/generate")
def admin_report_generate(payload: ReportRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    return _build_report(payload.report_type, payload.start_date, payload.end_date, payload.event_id)


@app.post("/api/admin/reports/individual")
def admin_report_individual(payload: IndividualReportRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    return _build_report(REPORT_INDIVIDUAL, payload.start_date, payload.end_date, None)


@app.get("/api/admin/reports/export_xlsx")
def admin_report_export_xlsx(
    start_date: str,
    end_date: str,
    admin_id: Optional[int] = None,
    report_type: str = "overall",
    event_id: Optional[int] = None,
) -> StreamingResponse:
    _require_admin(admin_id)
    report = _build_report(report_type, start_date, end_date, event_id)
    if report_type == REPORT_INDIVIDUAL:
        return _xlsx_response(individual_bookings_workbook(report), individual_bookings_filename(report))
    return _xlsx_response(financial_report_workbook(report), financial_report_filename(report))


@app.post("/api/admin/reports/save")
def admin_report_save(payload: ReportSaveRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    report = _build_report(payload.report_type, payload.start_date, payload.end_date, payload.event_id)
    filters = {
        "reportType": payload.report_type,
        "selectedEventId": payload.event_id if payload.report_type == "event" else None,
    }
    result = reports.save(
        payload.report_name,
        payload.report_type,
        payload.start_date,
        payload.end_date,
        report,
        filters=filters,
        created_by=payload.admin_id,
    )
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return {"ok": True, "message": result.message, "report_id": result.payload}


@app.get("/api/admin/reports")
def admin_reports(admin_id: Optional[int] = None, report_type: Optional[str] = None, limit: int = 50) -> Dict[str, Any]:
    _require_admin(admin_id)
    items = []
    for saved in reports.list_saved(report_type=report_type, limit=limit):
        payload = asdict(saved)
        payload.pop("report_data")
        items.append(payload)
    return {"items": items}


@app.get("/api/admin/reports/{report_id}")
def admin_report_detail(report_id: int, admin_id: Optional[int] = None) -> Dict[str, Any]:
    _require_admin(admin_id)
    saved = reports.get_saved(report_id)
    if not saved:
        raise HTTPException(status_code=404, detail="Report not found.")
    return {"report": asdict(saved)}


@app.post("/api/admin/reports/delete")
def admin_report_delete(payload: ReportDeleteRequest) -> Dict[str, Any]:
    _require_admin(payload.admin_id)
    result = reports.delete_saved(payload.report_id)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.message)
    return {"ok": True, "message": result.message}


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("ADMIN_HOST", "0.0.0.0")
    port = int(os.getenv("PORT") or os.getenv("ADMIN_PORT", "8080"))
    reload_enabled = os.getenv("ADMIN_RELOAD", "0") == "1"
    uvicorn.run("ticketledger.admin_server:app", host=host, port=port, reload=reload_enabled)
