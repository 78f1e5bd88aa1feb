import calendar
import json
import logging
import os
import sqlite3
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from ticketledger import finance
from ticketledger.models import (
    Booking,
    Category,
    Event,
    FinancialTransaction,
    SavedReport,
    SeatPricing,
    Venue,
)

logger = logging.getLogger(__name__)

EVENT_DT_FORMAT = "%Y-%m-%d %H:%M"
REPORT_DATE_FORMAT = "%Y-%m-%d"

STATUS_PENDING = "Pending"
STATUS_CONFIRMED = "Confirmed"
STATUS_CANCELLED = "Cancelled"

EVENT_ACTIVE = "active"

RECURRENCE_PATTERNS = ("daily", "weekly", "monthly")
MAX_SERIES_DATES = 400

EVENT_COLUMNS = "id, name, start_datetime, venue_id, category_id, description, status, recurrence_type, series_code"
PRICING_COLUMNS = (
    "id, event_id, seat_category, base_price, convenience_fee, commission, "
    "convenience_fee_type, convenience_fee_value, commission_type, commission_value, "
    "total_tickets, available_tickets, is_active"
)
BOOKING_COLUMNS = (
    "id, event_id, customer_name, customer_email, customer_phone, customer_state, "
    "quantity, total_price, convenience_fee, seat_numbers, status, created_at"
)
TRANSACTION_COLUMNS = (
    "id, booking_id, event_id, ticket_price, convenience_fee, convenience_base_fee, "
    "gst_on_convenience_base_fee, commission, actual_commission, gst_on_actual_commission, "
    "reimbursable_ticket_price, customer_state, event_state, is_wb_customer, is_wb_event, created_at"
)


def parse_report_date(value: str) -> date:
    try:
        return datetime.strptime((value or "").strip(), REPORT_DATE_FORMAT).date()
    except ValueError as exc:
        raise ValueError(f"Invalid date {value!r}. Use YYYY-MM-DD") from exc


def date_range_bounds(start: str, end: str) -> Tuple[str, str]:
    """Inclusive calendar-day range as ``[start 00:00, day after end 00:00)``."""
    if not start or not end:
        raise ValueError("Please select both start and end dates")
    start_day = parse_report_date(start)
    end_day = parse_report_date(end)
    if start_day > end_day:
        raise ValueError("Start date must not be after end date")
    return f"{start_day.isoformat()}T00:00:00", f"{(end_day + timedelta(days=1)).isoformat()}T00:00:00"


def canonical_timestamp(value: str) -> str:
    """Normalise an ISO 8601 timestamp to UTC ``YYYY-MM-DDTHH:MM:SS.ffffff+00:00``.

    Naive values are taken as UTC. Range filters and invoice ordering compare
    the stored strings, so every row must share this form.
    """
    try:
        parsed = datetime.fromisoformat((value or "").strip())
    except ValueError as exc:
        raise ValueError("created_at must be an ISO 8601 timestamp") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat(timespec="microseconds")


def event_dates(start: str, end: str, pattern: str) -> List[str]:
    """Occurrence dates from start to end inclusive for a recurrence pattern."""
    kind = (pattern or "").strip().lower()
    if kind not in RECURRENCE_PATTERNS:
        raise ValueError(f"Unknown recurrence pattern: {pattern}")
    first = parse_report_date(start)
    last = parse_report_date(end)
    if first > last:
        raise ValueError("Series end date must not be before start date")

    dates: List[str] = []
    current = first
    step = 0
    while current <= last:
        dates.append(current.isoformat())
        if len(dates) > MAX_SERIES_DATES:
            raise ValueError(f"Series would create more than {MAX_SERIES_DATES} events")
        step += 1
        if kind == "daily":
            current = first + timedelta(days=step)
        elif kind == "weekly":
            current = first + timedelta(days=7 * step)
        else:
            month_index = first.month - 1 + step
            year = first.year + month_index // 12
            month = month_index % 12 + 1
            day = min(first.day, calendar.monthrange(year, month)[1])
            current = date(year, month, day)
    return dates


class Database:
    def __init__(self, path: str) -> None:
        dir_name = os.path.dirname(path)
        if dir_name:
            os.makedirs(dir_name, exist_ok=True)
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.execute("PRAGMA journal_mode = WAL")
        self.conn.execute("PRAGMA synchronous = NORMAL")
        self._init_schema()
        self._migrate_schema()

    def close(self) -> None:
        self.conn.close()

    def _init_schema(self) -> None:
        cursor = self.conn.cursor()
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS venues (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                city TEXT NOT NULL DEFAULT '',
                state TEXT NOT NULL DEFAULT '',
                address TEXT NOT NULL DEFAULT ''
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                description TEXT NOT NULL DEFAULT ''
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                start_datetime TEXT NOT NULL,
                venue_id INTEGER,
                category_id INTEGER,
                description TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL DEFAULT 'active',
                recurrence_type TEXT,
                series_code TEXT NOT NULL DEFAULT '',
                FOREIGN KEY (venue_id) REFERENCES venues(id),
                FOREIGN KEY (category_id) REFERENCES categories(id)
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS event_seat_pricing (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id INTEGER NOT NULL,
                seat_category TEXT NOT NULL DEFAULT 'General',
                base_price REAL NOT NULL,
                convenience_fee REAL NOT NULL DEFAULT 0,
                commission REAL NOT NULL DEFAULT 0,
                convenience_fee_type TEXT,
                convenience_fee_value REAL,
                commission_type TEXT,
                commission_value REAL,
                total_tickets INTEGER NOT NULL DEFAULT 0,
                available_tickets INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1,
                UNIQUE (event_id, seat_category),
                FOREIGN KEY (event_id) REFERENCES events(id)
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS bookings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id INTEGER NOT NULL,
                customer_name TEXT NOT NULL DEFAULT '',
                customer_email TEXT NOT NULL DEFAULT '',
                customer_phone TEXT NOT NULL DEFAULT '',
                customer_state TEXT,
                quantity INTEGER NOT NULL,
                total_price REAL NOT NULL,
                convenience_fee REAL NOT NULL DEFAULT 0,
                seat_numbers TEXT NOT NULL DEFAULT '[]',
                status TEXT NOT NULL DEFAULT 'Pending',
                created_at TEXT NOT NULL,
                FOREIGN KEY (event_id) REFERENCES events(id)
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS financial_transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                booking_id INTEGER NOT NULL,
                event_id INTEGER NOT NULL,
                ticket_price REAL NOT NULL,
                convenience_fee REAL NOT NULL DEFAULT 0,
                convenience_base_fee REAL NOT NULL DEFAULT 0,
                gst_on_convenience_base_fee REAL NOT NULL DEFAULT 0,
                commission REAL NOT NULL DEFAULT 0,
                actual_commission REAL NOT NULL DEFAULT 0,
                gst_on_actual_commission REAL NOT NULL DEFAULT 0,
                reimbursable_ticket_price REAL NOT NULL DEFAULT 0,
                customer_state TEXT NOT NULL DEFAULT 'Unknown',
                event_state TEXT NOT NULL DEFAULT 'Unknown',
                is_wb_customer INTEGER NOT NULL DEFAULT 0,
                is_wb_event INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                FOREIGN KEY (booking_id) REFERENCES bookings(id),
                FOREIGN KEY (event_id) REFERENCES events(id)
            )
            """
        )
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS financial_reports (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                report_name TEXT NOT NULL,
                report_type TEXT NOT NULL,
                date_range_start TEXT NOT NULL,
                date_range_end TEXT NOT NULL,
                report_data TEXT NOT NULL,
                filters_applied TEXT NOT NULL DEFAULT '{}',
                created_by INTEGER,
                created_at TEXT NOT NULL
            )
            """
        )
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_bookings_created_at ON bookings(created_at)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_transactions_created_at ON financial_transactions(created_at)"
        )
        self.conn.commit()

    def _migrate_schema(self) -> None:
        cursor = self.conn.cursor()

        event_cols = self._table_columns("events")
        if "recurrence_type" not in event_cols:
            cursor.execute("ALTER TABLE events ADD COLUMN recurrence_type TEXT")
        if "series_code" not in event_cols:
            cursor.execute("ALTER TABLE events ADD COLUMN series_code TEXT NOT NULL DEFAULT ''")

        pricing_cols = self._table_columns("event_seat_pricing")
        for column, ddl in (
            ("convenience_fee_type", "TEXT"),
            ("convenience_fee_value", "REAL"),
            ("commission_type", "TEXT"),
            ("commission_value", "REAL"),
        ):
            if column not in pricing_cols:
                cursor.execute(f"ALTER TABLE event_seat_pricing ADD COLUMN {column} {ddl}")

        booking_cols = self._table_columns("bookings")
        if "customer_state" not in booking_cols:
            cursor.execute("ALTER TABLE bookings ADD COLUMN customer_state TEXT")
        if "seat_numbers" not in booking_cols:
            cursor.execute("ALTER TABLE bookings ADD COLUMN seat_numbers TEXT NOT NULL DEFAULT '[]'")

        cursor.execute("UPDATE bookings SET status = ? WHERE LOWER(TRIM(status)) = 'confirmed'", (STATUS_CONFIRMED,))
        self.conn.commit()

    def _table_columns(self, table_name: str) -> set:
        cursor = self.conn.cursor()
        cursor.execute(f"PRAGMA table_info({table_name})")
        return {row["name"] for row in cursor.fetchall()}

    def _utc_now(self) -> str:
        return datetime.now(timezone.utc).isoformat(timespec="microseconds")

    def parse_event_datetime(self, value: str) -> datetime:
        return datetime.strptime(value, EVENT_DT_FORMAT)

    # Venues and categories

    def create_venue(self, name: str, city: str = "", state: str = "", address: str = "") -> int:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValueError("Venue name is required")
        cursor = self.conn.cursor()
        cursor.execute(
            "INSERT INTO venues (name, city, state, address) VALUES (?, ?, ?, ?)",
            (clean_name, (city or "").strip(), (state or "").strip(), (address or "").strip()),
        )
        self.conn.commit()
        return int(cursor.lastrowid)

    def get_venue(self, venue_id: int) -> Optional[Venue]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT id, name, city, state, address FROM venues WHERE id = ?", (venue_id,))
        row = cursor.fetchone()
        return Venue(**dict(row)) if row else None

    def list_venues(self, search: Optional[str] = None) -> List[Venue]:
        cursor = self.conn.cursor()
        if search:
            pattern = f"%{search.strip()}%"
            cursor.execute(
                """
                SELECT id, name, city, state, address FROM venues
                WHERE name LIKE ? OR city LIKE ? OR state LIKE ?
                ORDER BY name COLLATE NOCASE
                """,
                (pattern, pattern, pattern),
            )
        else:
            cursor.execute("SELECT id, name, city, state, address FROM venues ORDER BY name COLLATE NOCASE")
        return [Venue(**dict(row)) for row in cursor.fetchall()]

    def set_venue_fields(self, venue_id: int, updates: Dict[str, Any]) -> Tuple[bool, str]:
        allowed = {"name", "city", "state", "address"}
        if not updates:
            return False, "No fields provided."
        for key in updates:
            if key not in allowed:
                return False, f"Unsupported field: {key}"
        if "name" in updates and not str(updates["name"] or "").strip():
            return False, "Venue name is required."
        assignments = ", ".join(f"{key} = ?" for key in updates)
        params = [str(value or "").strip() for value in updates.values()] + [venue_id]
        cursor = self.conn.cursor()
        cursor.execute(f"UPDATE venues SET {assignments} WHERE id = ?", tuple(params))
        self.conn.commit()
        if cursor.rowcount <= 0:
            return False, "Venue not found."
        return True, "Venue updated."

    def delete_venue(self, venue_id: int) -> Tuple[bool, str]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT COUNT(*) AS cnt FROM events WHERE venue_id = ?", (venue_id,))
        if int(cursor.fetchone()["cnt"]) > 0:
            return False, "Venue is used by existing events."
        cursor.execute("DELETE FROM venues WHERE id = ?", (venue_id,))
        self.conn.commit()
        if cursor.rowcount <= 0:
            return False, "Venue not found."
        return True, "Venue deleted."

    def create_category(self, name: str, description: str = "") -> int:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValueError("Category name is required")
        cursor = self.conn.cursor()
        try:
            cursor.execute(
                "INSERT INTO categories (name, description) VALUES (?, ?)",
                (clean_name, (description or "").strip()),
            )
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            raise ValueError(f"Category {clean_name!r} already exists") from exc
        self.conn.commit()
        return int(cursor.lastrowid)

    def list_categories(self) -> List[Category]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT id, name, description FROM categories ORDER BY name COLLATE NOCASE")
        return [Category(**dict(row)) for row in cursor.fetchall()]

    def delete_category(self, category_id: int) -> Tuple[bool, str]:
        cursor = self.conn.cursor()
        cursor.execute("UPDATE events SET category_id = NULL WHERE category_id = ?", (category_id,))
        cursor.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        self.conn.commit()
        if cursor.rowcount <= 0:
            return False, "Category not found."
        return True, "Category deleted."

    # Events

    def create_event(
        self,
        name: str,
        start_datetime: str,
        venue_id: Optional[int] = None,
        category_id: Optional[int] = None,
        description: str = "",
        recurrence_type: Optional[str] = None,
        series_code: str = "",
    ) -> int:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValueError("Event name is required")
        self.parse_event_datetime(start_datetime)
        if venue_id is not None and not self.get_venue(venue_id):
            raise ValueError("Venue not found")
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO events (name, start_datetime, venue_id, category_id, description, status, recurrence_type, series_code)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                clean_name,
                start_datetime,
                venue_id,
                category_id,
                description or "",
                EVENT_ACTIVE,
                recurrence_type,
                series_code,
            ),
        )
        self.conn.commit()
        return int(cursor.lastrowid)

    def create_event_series(
        self,
        name: str,
        start_date: str,
        end_date: str,
        pattern: str,
        event_time: str,
        venue_id: Optional[int] = None,
        category_id: Optional[int] = None,
        description: str = "",
        pricing_rows: Optional[List[Dict[str, Any]]] = None,
    ) -> List[int]:
        dates = event_dates(start_date, end_date, pattern)
        series_code = f"S-{uuid.uuid4().hex[:8].upper()}"
        event_ids = []
        for day in dates:
            event_id = self.create_event(
                name=name,
                start_datetime=f"{day} {event_time}",
                venue_id=venue_id,
                category_id=category_id,
                description=description,
                recurrence_type=pattern.strip().lower(),
                series_code=series_code,
            )
            for row in pricing_rows or []:
                self.upsert_seat_pricing(event_id=event_id, **row)
            event_ids.append(event_id)
        return event_ids

    def get_event(self, event_id: int) -> Optional[Event]:
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT {EVENT_COLUMNS} FROM events WHERE id = ?", (event_id,))
        row = cursor.fetchone()
        return Event(**dict(row)) if row else None

    def list_events(self, status: Optional[str] = None) -> List[Event]:
        cursor = self.conn.cursor()
        if status:
            cursor.execute(
                f"SELECT {EVENT_COLUMNS} FROM events WHERE status = ? ORDER BY start_datetime DESC",
                (status,),
            )
        else:
            cursor.execute(f"SELECT {EVENT_COLUMNS} FROM events ORDER BY start_datetime DESC")
        return [Event(**dict(row)) for row in cursor.fetchall()]

    def event_state(self, event_id: int) -> Optional[str]:
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT v.state
            FROM events e
            LEFT JOIN venues v ON v.id = e.venue_id
            WHERE e.id = ?
            """,
            (event_id,),
        )
        row = cursor.fetchone()
        if not row or not row["state"]:
            return None
        return row["state"]

    def set_event_fields(self, event_id: int, updates: Dict[str, Any]) -> Tuple[bool, str]:
        field_map = {
            "name": "name",
            "datetime": "start_datetime",
            "venue_id": "venue_id",
            "category_id": "category_id",
            "description": "description",
            "status": "status",
        }
        if not updates:
            return False, "No fields provided."

        assignments: List[str] = []
        params: List[Any] = []
        for key, value in updates.items():
            if key not in field_map:
                return False, f"Unsupported field: {key}"
            if key == "name" and not str(value or "").strip():
                return False, "Event name is required."
            if key == "datetime":
                try:
                    self.parse_event_datetime(str(value))
                except ValueError:
                    return False, "Invalid datetime format. Use YYYY-MM-DD HH:MM"
            if key in {"venue_id", "category_id"} and value is not None:
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    return False, f"{key} must be integer."
            assignments.append(f"{field_map[key]} = ?")
            params.append(value)

        params.append(event_id)
        cursor = self.conn.cursor()
        try:
            cursor.execute(f"UPDATE events SET {', '.join(assignments)} WHERE id = ?", tuple(params))
        except sqlite3.IntegrityError:
            self.conn.rollback()
            return False, "Referenced venue or category does not exist."
        self.conn.commit()
        if cursor.rowcount <= 0:
            return False, "Event not found."
        return True, "Event updated."

    def delete_event(self, event_id: int) -> Tuple[bool, str, Dict[str, int]]:
        empty = {"events": 0, "bookings": 0, "transactions": 0}
        cursor = self.conn.cursor()
        cursor.execute("SELECT id FROM events WHERE id = ?", (event_id,))
        if not cursor.fetchone():
            return False, "Event not found.", empty

        cursor.execute("SELECT COUNT(*) AS cnt FROM bookings WHERE event_id = ?", (event_id,))
        booking_count = int(cursor.fetchone()["cnt"])
        cursor.execute("SELECT COUNT(*) AS cnt FROM financial_transactions WHERE event_id = ?", (event_id,))
        transaction_count = int(cursor.fetchone()["cnt"])

        try:
            cursor.execute("DELETE FROM financial_transactions WHERE event_id = ?", (event_id,))
            cursor.execute("DELETE FROM bookings WHERE event_id = ?", (event_id,))
            cursor.execute("DELETE FROM event_seat_pricing WHERE event_id = ?", (event_id,))
            cursor.execute("DELETE FROM events WHERE id = ?", (event_id,))
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            return False, f"Failed to delete event: {exc}", empty

        return (
            True,
            f"Event deleted. Removed {booking_count} bookings and {transaction_count} transactions.",
            {"events": 1, "bookings": booking_count, "transactions": transaction_count},
        )

    # Pricing

    def _validate_fee(self, label: str, fee_type: Optional[str], fee_value: Optional[float]) -> None:
        if fee_type is None:
            return
        if fee_type not in finance.FEE_TYPES:
            raise ValueError(f"{label} type must be fixed or percentage")
        if fee_value is not None and float(fee_value) < 0:
            raise ValueError(f"{label} value must be non-negative")

    def upsert_seat_pricing(
        self,
        event_id: int,
        base_price: float,
        seat_category: str = "General",
        convenience_fee: float = 0.0,
        commission: float = 0.0,
        convenience_fee_type: Optional[str] = None,
        convenience_fee_value: Optional[float] = None,
        commission_type: Optional[str] = None,
        commission_value: Optional[float] = None,
        total_tickets: int = 0,
        is_active: bool = True,
    ) -> int:
        if not self.get_event(event_id):
            raise ValueError("Event not found")
        if float(base_price) < 0:
            raise ValueError("Base price must be non-negative")
        self._validate_fee("Convenience fee", convenience_fee_type, convenience_fee_value)
        self._validate_fee("Commission", commission_type, commission_value)
        category = (seat_category or "General").strip() or "General"

        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO event_seat_pricing (
                event_id, seat_category, base_price, convenience_fee, commission,
                convenience_fee_type, convenience_fee_value, commission_type, commission_value,
                total_tickets, available_tickets, is_active
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(event_id, seat_category) DO UPDATE SET
                base_price=excluded.base_price,
                convenience_fee=excluded.convenience_fee,
                commission=excluded.commission,
                convenience_fee_type=excluded.convenience_fee_type,
                convenience_fee_value=excluded.convenience_fee_value,
                commission_type=excluded.commission_type,
                commission_value=excluded.commission_value,
                total_tickets=excluded.total_tickets,
                available_tickets=excluded.available_tickets,
                is_active=excluded.is_active
            """,
            (
                event_id,
                category,
                float(base_price),
                float(convenience_fee or 0),
                float(commission or 0),
                convenience_fee_type,
                convenience_fee_value,
                commission_type,
                commission_value,
                int(total_tickets),
                int(total_tickets),
                1 if is_active else 0,
            ),
        )
        self.conn.commit()
        cursor.execute(
            "SELECT id FROM event_seat_pricing WHERE event_id = ? AND seat_category = ?",
            (event_id, category),
        )
        return int(cursor.fetchone()["id"])

    def list_seat_pricing(self, event_id: int) -> List[SeatPricing]:
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {PRICING_COLUMNS} FROM event_seat_pricing WHERE event_id = ? ORDER BY id",
            (event_id,),
        )
        return [SeatPricing(**dict(row)) for row in cursor.fetchall()]

    def active_pricing(self, event_id: int) -> Optional[SeatPricing]:
        for pricing in self.list_seat_pricing(event_id):
            if pricing.is_active:
                return pricing
        return None

    # Bookings

    def create_booking(
        self,
        event_id: int,
        quantity: int,
        total_price: float,
        convenience_fee: float = 0.0,
        customer_name: str = "",
        customer_email: str = "",
        customer_phone: str = "",
        customer_state: Optional[str] = None,
        seat_numbers: Optional[List[Dict[str, Any]]] = None,
        created_at: Optional[str] = None,
    ) -> Booking:
        if not self.get_event(event_id):
            raise ValueError("Event not found")
        if int(quantity) <= 0:
            raise ValueError("Quantity must be at least 1")
        if float(total_price) < 0 or float(convenience_fee) < 0:
            raise ValueError("Amounts must be non-negative")
        if float(convenience_fee) > float(total_price):
            raise ValueError("Convenience fee cannot exceed total price")
        created_at = canonical_timestamp(created_at) if created_at else self._utc_now()

        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO bookings (
                event_id, customer_name, customer_email, customer_phone, customer_state,
                quantity, total_price, convenience_fee, seat_numbers, status, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event_id,
                (customer_name or "").strip(),
                (customer_email or "").strip(),
                (customer_phone or "").strip(),
                (customer_state or "").strip() or None,
                int(quantity),
                float(total_price),
                float(convenience_fee),
                json.dumps(seat_numbers or []),
                STATUS_PENDING,
                created_at,
            ),
        )
        self.conn.commit()
        return self.get_booking(int(cursor.lastrowid))

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT {BOOKING_COLUMNS} FROM bookings WHERE id = ?", (booking_id,))
        row = cursor.fetchone()
        return Booking(**dict(row)) if row else None

    def list_bookings(
        self,
        start: Optional[str] = None,
        end: Optional[str] = None,
        status: Optional[str] = None,
        event_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Booking]:
        clauses: List[str] = []
        params: List[Any] = []
        if start or end:
            lower, upper = date_range_bounds(start, end)
            clauses.append("created_at >= ? AND created_at < ?")
            params.extend([lower, upper])
        if status:
            clauses.append("status = ?")
            params.append(status)
        if event_id is not None:
            clauses.append("event_id = ?")
            params.append(event_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit_sql = ""
        if limit is not None:
            limit_sql = "LIMIT ?"
            params.append(max(1, min(int(limit), 1000)))
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {BOOKING_COLUMNS} FROM bookings {where} ORDER BY created_at, id {limit_sql}",
            tuple(params),
        )
        return [Booking(**dict(row)) for row in cursor.fetchall()]

    def invoice_number(self, booking: Booking) -> str:
        """``INV-YYMM-NNNN`` numbered by position within the booking's month."""
        try:
            created = datetime.fromisoformat(booking.created_at)
        except (TypeError, ValueError):
            created = datetime.now(timezone.utc)
        month_prefix = created.strftime("%Y-%m")
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT COUNT(*) AS cnt
            FROM bookings
            WHERE substr(created_at, 1, 7) = ?
              AND (created_at < ? OR (created_at = ? AND id <= ?))
            """,
            (month_prefix, booking.created_at, booking.created_at, booking.id),
        )
        sequence = int(cursor.fetchone()["cnt"]) or 1
        return f"INV-{created.strftime('%y%m')}-{sequence:04d}"

    def confirm_booking(
        self,
        booking_id: int,
        home_state: str = finance.HOME_STATE,
        default_rate: float = finance.DEFAULT_COMMISSION_RATE,
    ) -> Tuple[bool, str, Optional[Booking]]:
        booking = self.get_booking(booking_id)
        if not booking:
            return False, "Booking not found.", None
        if booking.status == STATUS_CONFIRMED:
            return False, "Booking is already confirmed.", booking
        if booking.status == STATUS_CANCELLED:
            return False, "Cancelled booking cannot be confirmed.", booking

        pricing = self.active_pricing(booking.event_id)
        transactions = finance.ticket_transactions(
            booking,
            pricing,
            self.event_state(booking.event_id),
            home_state=home_state,
            default_rate=default_rate,
        )
        cursor = self.conn.cursor()
        try:
            cursor.execute("UPDATE bookings SET status = ? WHERE id = ?", (STATUS_CONFIRMED, booking_id))
            self._insert_transactions(cursor, transactions)
            self.conn.commit()
        except sqlite3.Error as exc:
            self.conn.rollback()
            return False, f"Failed to confirm booking: {exc}", booking
        logger.info("Booking %s confirmed, recorded %s ticket transactions", booking_id, len(transactions))
        return True, "Booking confirmed.", self.get_booking(booking_id)

    def cancel_booking(self, booking_id: int) -> Tuple[bool, str, Optional[Booking]]:
        booking = self.get_booking(booking_id)
        if not booking:
            return False, "Booking not found.", None
        if booking.status == STATUS_CANCELLED:
            return False, "Booking is already cancelled.", booking
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM financial_transactions WHERE booking_id = ?", (booking_id,))
        cursor.execute("UPDATE bookings SET status = ? WHERE id = ?", (STATUS_CANCELLED, booking_id))
        self.conn.commit()
        logger.info("Booking %s cancelled", booking_id)
        return True, "Booking cancelled.", self.get_booking(booking_id)

    # Financial transactions

    def _insert_transactions(self, cursor: sqlite3.Cursor, transactions: List[FinancialTransaction]) -> None:
        for tx in transactions:
            cursor.execute(
                """
                INSERT INTO financial_transactions (
                    booking_id, event_id, ticket_price, convenience_fee, convenience_base_fee,
                    gst_on_convenience_base_fee, commission, actual_commission, gst_on_actual_commission,
                    reimbursable_ticket_price, customer_state, event_state, is_wb_customer, is_wb_event, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tx.booking_id,
                    tx.event_id,
                    tx.ticket_price,
                    tx.convenience_fee,
                    tx.convenience_base_fee,
                    tx.gst_on_convenience_base_fee,
                    tx.commission,
                    tx.actual_commission,
                    tx.gst_on_actual_commission,
                    tx.reimbursable_ticket_price,
                    tx.customer_state,
                    tx.event_state,
                    tx.is_wb_customer,
                    tx.is_wb_event,
                    tx.created_at,
                ),
            )

    def list_financial_transactions(
        self,
        start: str,
        end: str,
        event_id: Optional[int] = None,
    ) -> List[FinancialTransaction]:
        lower, upper = date_range_bounds(start, end)
        params: List[Any] = [lower, upper]
        event_sql = ""
        if event_id is not None:
            event_sql = "AND event_id = ?"
            params.append(event_id)
        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT {TRANSACTION_COLUMNS}
            FROM financial_transactions
            WHERE created_at >= ? AND created_at < ? {event_sql}
            ORDER BY created_at, id
            """,
            tuple(params),
        )
        return [FinancialTransaction(**dict(row)) for row in cursor.fetchall()]

    def event_names(self, event_ids: List[int]) -> Dict[int, str]:
        if not event_ids:
            return {}
        placeholders = ", ".join(["?"] * len(event_ids))
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT id, name FROM events WHERE id IN ({placeholders})", tuple(event_ids))
        return {int(row["id"]): row["name"] for row in cursor.fetchall()}

    # Statistics

    def list_event_stats(
        self,
        sort_by: str = "date",
        search: Optional[str] = None,
        limit: int = 30,
    ) -> List[sqlite3.Row]:
        order_map = {
            "date": "e.start_datetime DESC",
            "name": "e.name COLLATE NOCASE ASC",
            "tickets": "confirmed_tickets DESC, e.start_datetime DESC",
            "revenue": "confirmed_revenue DESC, e.start_datetime DESC",
            "pending": "pending_bookings DESC, e.start_datetime DESC",
        }
        order_sql = order_map.get(sort_by, order_map["date"])
        params: List[Any] = [STATUS_CONFIRMED, STATUS_CONFIRMED, STATUS_CONFIRMED, STATUS_PENDING]
        search_sql = ""
        if search:
            search_sql = "WHERE e.name LIKE ? OR COALESCE(v.name, '') LIKE ?"
            pattern = f"%{search.strip()}%"
            params.extend([pattern, pattern])
        params.append(max(1, min(int(limit), 200)))

        cursor = self.conn.cursor()
        cursor.execute(
            f"""
            SELECT
                e.id,
                e.name,
                e.start_datetime,
                e.status,
                COALESCE(v.name, '') AS venue_name,
                COALESCE(v.state, '') AS venue_state,
                COALESCE(SUM(CASE WHEN b.status = ? THEN 1 ELSE 0 END), 0) AS confirmed_bookings,
                COALESCE(SUM(CASE WHEN b.status = ? THEN b.quantity ELSE 0 END), 0) AS confirmed_tickets,
                COALESCE(SUM(CASE WHEN b.status = ? THEN b.total_price ELSE 0 END), 0) AS confirmed_revenue,
                COALESCE(SUM(CASE WHEN b.status = ? THEN 1 ELSE 0 END), 0) AS pending_bookings
            FROM events e
            LEFT JOIN venues v ON v.id = e.venue_id
            LEFT JOIN bookings b ON b.event_id = e.id
            {search_sql}
            GROUP BY e.id
            ORDER BY {order_sql}
            LIMIT ?
            """,
            tuple(params),
        )
        return cursor.fetchall()

    def dashboard_totals(self) -> Dict[str, Any]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT COUNT(*) AS cnt FROM events")
        total_events = int(cursor.fetchone()["cnt"])
        cursor.execute("SELECT COUNT(*) AS cnt FROM events WHERE status = ?", (EVENT_ACTIVE,))
        active_events = int(cursor.fetchone()["cnt"])
        cursor.execute("SELECT COUNT(*) AS cnt FROM venues")
        total_venues = int(cursor.fetchone()["cnt"])
        cursor.execute(
            """
            SELECT COUNT(*) AS cnt,
                   COALESCE(SUM(quantity), 0) AS tickets,
                   COALESCE(SUM(total_price), 0) AS revenue
            FROM bookings
            WHERE status = ?
            """,
            (STATUS_CONFIRMED,),
        )
        row = cursor.fetchone()
        return {
            "total_events": total_events,
            "active_events": active_events,
            "total_venues": total_venues,
            "total_bookings": int(row["cnt"]),
            "total_tickets": int(row["tickets"]),
            "total_revenue": float(row["revenue"]),
        }

    # Saved reports

    def save_report(
        self,
        report_name: str,
        report_type: str,
        date_range_start: str,
        date_range_end: str,
        report_data: Dict[str, Any],
        filters_applied: Optional[Dict[str, Any]] = None,
        created_by: Optional[int] = None,
    ) -> int:
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO financial_reports (
                report_name, report_type, date_range_start, date_range_end,
                report_data, filters_applied, created_by, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                report_name,
                report_type,
                date_range_start,
                date_range_end,
                json.dumps(report_data),
                json.dumps(filters_applied or {}),
                created_by,
                self._utc_now(),
            ),
        )
        self.conn.commit()
        return int(cursor.lastrowid)

    def get_report(self, report_id: int) -> Optional[SavedReport]:
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM financial_reports WHERE id = ?", (report_id,))
        row = cursor.fetchone()
        return SavedReport(**dict(row)) if row else None

    def list_reports(self, report_type: Optional[str] = None, limit: int = 50) -> List[SavedReport]:
        cursor = self.conn.cursor()
        bounded = max(1, min(int(limit), 500))
        if report_type:
            cursor.execute(
                "SELECT * FROM financial_reports WHERE report_type = ? ORDER BY created_at DESC, id DESC LIMIT ?",
                (report_type, bounded),
            )
        else:
            cursor.execute(
                "SELECT * FROM financial_reports ORDER BY created_at DESC, id DESC LIMIT ?",
                (bounded,),
            )
        return [SavedReport(**dict(row)) for row in cursor.fetchall()]

    def delete_report(self, report_id: int) -> bool:
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM financial_reports WHERE id = ?", (report_id,))
        self.conn.commit()
        return cursor.rowcount > 0
