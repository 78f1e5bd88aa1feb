import os
import tempfile
import unittest

from ticketledger.database import Database
from ticketledger.services import BookingService, ReportService
from ticketledger.workbooks import (
    financial_report_filename,
    financial_report_workbook,
    individual_bookings_filename,
    individual_bookings_workbook,
)


def sheet_values(sheet):
    return [row for row in sheet.iter_rows(values_only=True)]


class ReportServiceTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db = Database(os.path.join(self.temp_dir.name, "reports.db"))
        self.bookings = BookingService(self.db)
        self.reports = ReportService(self.db)

        venue_id = self.db.create_venue("Netaji Indoor Stadium", city="Kolkata", state="West Bengal")
        self.event_id = self.db.create_event(name="Winter Gala", start_datetime="2026-03-20 19:00", venue_id=venue_id)
        self.db.upsert_seat_pricing(self.event_id, base_price=500.0, convenience_fee=90.0, commission=50.0)

        local = self.bookings.create(
            self.event_id,
            2,
            1180.0,
            convenience_fee=180.0,
            customer_state="West Bengal",
            created_at="2026-03-05T10:00:00+00:00",
        )
        visitor = self.bookings.create(
            self.event_id,
            1,
            590.0,
            convenience_fee=90.0,
            customer_state="Kerala",
            created_at="2026-03-10T12:00:00+00:00",
        )
        self.bookings.create(
            self.event_id,
            1,
            590.0,
            convenience_fee=90.0,
            customer_state="Kerala",
            created_at="2026-03-11T12:00:00+00:00",
        )
        self.bookings.confirm(local.id)
        self.bookings.confirm(visitor.id)

    def tearDown(self):
        self.db.close()
        self.temp_dir.cleanup()

    def test_overall_report_sums_confirmed_tickets(self):
        report = self.reports.generate("overall", "2026-03-01", "2026-03-31")
        overall = report["overall"]
        self.assertEqual(len(report["items"]), 3)
        self.assertAlmostEqual(overall["total_ticket_price"], 1500.0)
        self.assertAlmostEqual(overall["total_convenience_fee"], 270.0)
        self.assertAlmostEqual(overall["total_sale_value"], 1770.0)
        self.assertAlmostEqual(overall["total_commission"], 150.0)
        self.assertAlmostEqual(overall["total_reimbursable_ticket_price"], 1350.0)
        self.assertAlmostEqual(overall["total_cgst"], overall["total_sgst"])
        self.assertGreater(overall["total_igst"], 0)
        self.assertIsNone(report["event_wise"])

        states = {row["state"]: row for row in report["state_wise"]}
        self.assertEqual(set(states), {"West Bengal", "Kerala"})
        self.assertAlmostEqual(states["Kerala"]["total_sale_value"], 590.0)
        self.assertAlmostEqual(states["Kerala"]["total_cgst"], 0.0)

    def test_event_report_carries_event_name(self):
        report = self.reports.generate("event", "2026-03-01", "2026-03-31", event_id=self.event_id)
        self.assertIsNone(report["overall"])
        self.assertEqual(report["event_wise"]["event_name"], "Winter Gala")
        self.assertEqual(report["event_wise"]["event_id"], self.event_id)
        self.assertAlmostEqual(report["event_wise"]["total_sale_value"], 1770.0)

    def test_generate_rejects_bad_requests(self):
        with self.assertRaises(ValueError):
            self.reports.generate("quarterly", "2026-03-01", "2026-03-31")
        with self.assertRaises(ValueError):
            self.reports.generate("event", "2026-03-01", "2026-03-31")
        with self.assertRaises(ValueError):
            self.reports.generate("overall", "2026-03-31", "2026-03-01")
        with self.assertRaises(LookupError):
            self.reports.generate("event", "2026-03-01", "2026-03-31", event_id=9999)
        with self.assertRaises(LookupError):
            self.reports.generate("itemized", "2025-01-01", "2025-01-31")

    def test_individual_bookings_skip_pending(self):
        report = self.reports.individual_bookings("2026-03-01", "2026-03-31")
        self.assertEqual(len(report["bookings"]), 2)
        self.assertEqual(report["totals"]["ticket_count"], 3)
        self.assertAlmostEqual(report["totals"]["total_sale_value"], 1770.0)

        visitor = report["bookings"][1]
        self.assertEqual(visitor["customer_state"], "Kerala")
        self.assertEqual(visitor["invoice_number"], "INV-2603-0002")
        self.assertAlmostEqual(visitor["cgst"], 0.0)
        self.assertAlmostEqual(visitor["igst"], visitor["commission_gst"] + visitor["convenience_fee_gst"])

        with self.assertRaises(LookupError):
            self.reports.individual_bookings("2025-01-01", "2025-01-31")

    def test_save_report_stores_inclusive_range(self):
        report = self.reports.generate("overall", "2026-03-01", "2026-03-31")
        result = self.reports.save("March overall", "overall", "2026-03-01", "2026-03-31", report, created_by=7)
        self.assertTrue(result.success)

        saved = self.reports.get_saved(result.payload)
        self.assertEqual(saved.date_range_start, "2026-03-01T00:00:00")
        self.assertEqual(saved.date_range_end, "2026-03-31T23:59:59")
        self.assertEqual(saved.created_by, 7)
        self.assertIn("reportType", saved.filters_applied)

        self.assertFalse(self.reports.save("  ", "overall", "2026-03-01", "2026-03-31", report).success)
        self.assertFalse(self.reports.save("Empty", "overall", "2026-03-01", "2026-03-31", {}).success)
        self.assertTrue(self.reports.delete_saved(result.payload).success)
        self.assertFalse(self.reports.delete_saved(result.payload).success)


class WorkbookTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db = Database(os.path.join(self.temp_dir.name, "workbooks.db"))
        venue_id = self.db.create_venue("Rabindra Sadan", state="West Bengal")
        self.event_id = self.db.create_event(name="Poetry Night", start_datetime="2026-03-15 18:00", venue_id=venue_id)
        booking = self.db.create_booking(
            self.event_id,
            quantity=2,
            total_price=1180.0,
            convenience_fee=180.0,
            customer_state="Odisha",
            created_at="2026-03-05T10:00:00+00:00",
        )
        self.db.confirm_booking(booking.id)
        self.reports = ReportService(self.db)

    def tearDown(self):
        self.db.close()
        self.temp_dir.cleanup()

    def test_overall_workbook_sheets_and_codes(self):
        report = self.reports.generate("overall", "2026-03-01", "2026-03-31")
        workbook = financial_report_workbook(report)
        self.assertEqual(workbook.sheetnames, ["Itemized Transactions", "Overall Report"])

        cells = {cell for row in sheet_values(workbook["Overall Report"]) for cell in row}
        self.assertIn("AA", cells)
        self.assertIn("AT", cells)
        self.assertIn("Odisha", cells)
        self.assertEqual(
            financial_report_filename(report),
            "Financial_Report_overall_2026-03-01_to_2026-03-31.xlsx",
        )

    def test_event_workbook_uses_event_codes(self):
        report = self.reports.generate("event", "2026-03-01", "2026-03-31", event_id=self.event_id)
        workbook = financial_report_workbook(report)
        self.assertEqual(workbook.sheetnames, ["Event Report"])
        cells = {cell for row in sheet_values(workbook["Event Report"]) for cell in row}
        self.assertIn("BA", cells)
        self.assertIn("Poetry Night", cells)

    def test_empty_report_falls_back_to_placeholder_sheet(self):
        workbook = financial_report_workbook({"report_type": "itemized", "start": "2026-03-01", "end": "2026-03-31"})
        self.assertEqual(workbook.sheetnames, ["Report"])

    def test_individual_workbook_ends_with_totals(self):
        report = self.reports.individual_bookings("2026-03-01", "2026-03-31")
        workbook = individual_bookings_workbook(report)
        self.assertEqual(workbook.sheetnames, ["Individual Bookings Report"])

        rows = sheet_values(workbook.active)
        total_row = rows[-1]
        self.assertEqual(total_row[0], "TOTAL")
        self.assertEqual(total_row[4], 2)
        self.assertEqual(total_row[5], 1180.0)
        self.assertEqual(total_row[-1], "All Dates")
        self.assertEqual(rows[-2][0], "INV-2603-0001")
        self.assertEqual(
            individual_bookings_filename(report),
            "Individual_Customer_Bookings_Report_2026-03-01_to_2026-03-31.xlsx",
        )


if __name__ == "__main__":
    unittest.main()
