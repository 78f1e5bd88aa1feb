import json
import unittest

from ticketledger import finance
from ticketledger.models import Booking, FinancialTransaction, SeatPricing


def make_booking(**overrides) -> Booking:
    values = {
        "id": 1,
        "event_id": 10,
        "customer_name": "Test Buyer",
        "customer_email": "buyer@example.invalid",
        "customer_phone": "9000000000",
        "customer_state": "West Bengal",
        "quantity": 2,
        "total_price": 1180.0,
        "convenience_fee": 180.0,
        "seat_numbers": "[]",
        "status": "Confirmed",
        "created_at": "2026-03-05T10:00:00+00:00",
    }
    values.update(overrides)
    return Booking(**values)


def make_pricing(**overrides) -> SeatPricing:
    values = {
        "id": 1,
        "event_id": 10,
        "seat_category": "General",
        "base_price": 500.0,
        "convenience_fee": 0.0,
        "commission": 0.0,
        "convenience_fee_type": None,
        "convenience_fee_value": None,
        "commission_type": None,
        "commission_value": None,
        "total_tickets": 100,
        "available_tickets": 100,
        "is_active": 1,
    }
    values.update(overrides)
    return SeatPricing(**values)


def make_transaction(**overrides) -> FinancialTransaction:
    ticket_price = overrides.pop("ticket_price", 500.0)
    convenience_fee = overrides.pop("convenience_fee", 50.0)
    commission = overrides.pop("commission", 50.0)
    convenience_base, convenience_gst = finance.split_gst_inclusive(convenience_fee)
    actual_commission, commission_gst = finance.split_gst_inclusive(commission)
    values = {
        "id": 1,
        "booking_id": 1,
        "event_id": 10,
        "ticket_price": ticket_price,
        "convenience_fee": convenience_fee,
        "convenience_base_fee": convenience_base,
        "gst_on_convenience_base_fee": convenience_gst,
        "commission": commission,
        "actual_commission": actual_commission,
        "gst_on_actual_commission": commission_gst,
        "reimbursable_ticket_price": ticket_price - commission,
        "customer_state": "West Bengal",
        "event_state": "West Bengal",
        "is_wb_customer": 0,
        "is_wb_event": 0,
        "created_at": "2026-03-05T10:00:00+00:00",
    }
    values.update(overrides)
    return FinancialTransaction(**values)


class FeeTests(unittest.TestCase):
    def test_percentage_and_fixed_fees(self):
        self.assertAlmostEqual(finance.fee_amount(1000, "percentage", 5), 50.0)
        self.assertAlmostEqual(finance.fee_amount(1000, "fixed", 30), 30.0)
        self.assertAlmostEqual(finance.fee_amount(1000, None, 12), 12.0)
        self.assertAlmostEqual(finance.fee_amount(1000, "percentage", None), 0.0)

    def test_unknown_fee_type_is_rejected(self):
        with self.assertRaises(ValueError):
            finance.fee_amount(1000, "bogus", 5)

    def test_resolve_seat_pricing_prefers_configured_type(self):
        pricing = make_pricing(
            base_price=800.0,
            convenience_fee=99.0,
            convenience_fee_type="percentage",
            convenience_fee_value=5,
            commission=7.0,
        )
        resolved = finance.resolve_seat_pricing(pricing)
        self.assertAlmostEqual(resolved["convenience_fee"], 40.0)
        self.assertAlmostEqual(resolved["total_price"], 840.0)
        self.assertAlmostEqual(resolved["commission"], 7.0)


class GstTests(unittest.TestCase):
    def test_split_keeps_parts_summing_to_amount(self):
        base, gst = finance.split_gst_inclusive(118.0)
        self.assertAlmostEqual(base, 118.0 * 0.84745)
        self.assertAlmostEqual(base + gst, 118.0)
        self.assertAlmostEqual(gst, 118.0 * finance.GST_RATIO, places=6)

    def test_intra_state_splits_cgst_and_sgst(self):
        split = finance.gst_breakdown(18.0, intra_state=True)
        self.assertEqual(split, {"cgst": 9.0, "sgst": 9.0, "igst": 0.0, "gst_wb": 18.0, "gst_other": 0.0})

    def test_inter_state_goes_to_igst(self):
        split = finance.gst_breakdown(18.0, intra_state=False)
        self.assertEqual(split, {"cgst": 0.0, "sgst": 0.0, "igst": 18.0, "gst_wb": 0.0, "gst_other": 18.0})


class DecomposeBookingTests(unittest.TestCase):
    def test_home_state_customer_uses_stored_commission(self):
        metrics = finance.decompose_booking(
            make_booking(),
            make_pricing(commission=50.0),
            event_name="Concert",
            invoice_number="INV-2603-0001",
        )
        self.assertEqual(metrics.ticket_count, 2)
        self.assertAlmostEqual(metrics.total_sale_value, 1180.0)
        self.assertAlmostEqual(metrics.total_ticket_price, 1000.0)
        self.assertAlmostEqual(metrics.total_convenience_fee, 180.0)
        self.assertAlmostEqual(metrics.convenience_fee_base, 152.541)
        self.assertAlmostEqual(metrics.convenience_fee_gst, 27.459)
        self.assertAlmostEqual(metrics.total_commission, 100.0)
        self.assertAlmostEqual(metrics.commission_base, 84.745)
        self.assertAlmostEqual(metrics.commission_gst, 15.255)
        self.assertAlmostEqual(metrics.reimbursable_ticket_price, 900.0)
        self.assertAlmostEqual(metrics.cgst, 21.357)
        self.assertAlmostEqual(metrics.sgst, 21.357)
        self.assertAlmostEqual(metrics.igst, 0.0)
        self.assertAlmostEqual(metrics.total_gst_wb, 42.714)
        self.assertAlmostEqual(metrics.total_gst_other, 0.0)
        self.assertEqual(metrics.booking_date, "2026-03-05")

    def test_other_state_customer_pays_igst_regardless_of_venue(self):
        metrics = finance.decompose_booking(
            make_booking(customer_state="Kerala"),
            make_pricing(commission=50.0),
            event_name="Concert",
            invoice_number="INV-2603-0001",
        )
        self.assertAlmostEqual(metrics.igst, 42.714)
        self.assertAlmostEqual(metrics.total_gst_other, 42.714)
        self.assertAlmostEqual(metrics.cgst + metrics.sgst, 0.0)

    def test_commission_falls_back_to_type_then_default_rate(self):
        by_type = finance.decompose_booking(
            make_booking(),
            make_pricing(commission_type="percentage", commission_value=10),
            event_name="Concert",
            invoice_number="INV",
        )
        self.assertAlmostEqual(by_type.total_commission, 100.0)

        fixed = finance.decompose_booking(
            make_booking(),
            make_pricing(commission_type="fixed", commission_value=30),
            event_name="Concert",
            invoice_number="INV",
        )
        self.assertAlmostEqual(fixed.total_commission, 60.0)

        default = finance.decompose_booking(
            make_booking(),
            None,
            event_name="Concert",
            invoice_number="INV",
            default_rate=0.2,
        )
        self.assertAlmostEqual(default.total_commission, 200.0)

    def test_missing_state_and_quantity_use_defaults(self):
        metrics = finance.decompose_booking(
            make_booking(customer_state=None, quantity=0),
            None,
            event_name="",
            invoice_number="INV",
        )
        self.assertEqual(metrics.customer_state, "Unknown")
        self.assertEqual(metrics.event_name, "Unknown Event")
        self.assertEqual(metrics.ticket_count, 1)

    def test_sum_booking_metrics_adds_every_column(self):
        first = finance.decompose_booking(make_booking(), make_pricing(commission=50.0), "A", "INV-1")
        second = finance.decompose_booking(make_booking(customer_state="Kerala", id=2), None, "B", "INV-2")
        totals = finance.sum_booking_metrics([first, second])
        self.assertEqual(totals["ticket_count"], 4)
        self.assertAlmostEqual(totals["total_sale_value"], 2360.0)
        self.assertAlmostEqual(totals["total_commission"], 200.0)
        self.assertAlmostEqual(totals["cgst"] + totals["sgst"] + totals["igst"], totals["total_gst_wb"] + totals["total_gst_other"])


class TicketTransactionTests(unittest.TestCase):
    def test_percentage_fee_is_reverse_calculated_from_total(self):
        pricing = make_pricing(
            convenience_fee_type="percentage",
            convenience_fee_value=10,
            commission_type="percentage",
            commission_value=10,
        )
        amounts = finance.ticket_amounts(make_booking(total_price=1100.0, convenience_fee=100.0), pricing)
        self.assertEqual(len(amounts), 2)
        self.assertAlmostEqual(amounts[0].ticket_price, 500.0)
        self.assertAlmostEqual(amounts[0].convenience_fee, 50.0)
        self.assertAlmostEqual(amounts[0].commission, 50.0)

    def test_fixed_fee_is_subtracted_per_ticket(self):
        pricing = make_pricing(
            convenience_fee_type="fixed",
            convenience_fee_value=20,
            commission_type="fixed",
            commission_value=30,
        )
        amounts = finance.ticket_amounts(make_booking(total_price=1040.0, convenience_fee=40.0), pricing)
        self.assertAlmostEqual(amounts[1].ticket_price, 500.0)
        self.assertAlmostEqual(amounts[1].convenience_fee, 20.0)
        self.assertAlmostEqual(amounts[1].commission, 30.0)

    def test_seat_prices_are_used_when_present(self):
        seats = [
            {"seat": "A1", "price": 800, "convenience_fee": 40, "commission": 80},
            {"seat": "A2", "price": 600, "convenience_fee": 30, "commission": 60},
        ]
        booking = make_booking(seat_numbers=json.dumps(seats), total_price=1470.0, convenience_fee=70.0)
        amounts = finance.ticket_amounts(booking, make_pricing(convenience_fee=999.0))
        self.assertEqual([a.ticket_price for a in amounts], [800.0, 600.0])
        self.assertEqual([a.commission for a in amounts], [80.0, 60.0])

    def test_transactions_carry_state_flags_and_splits(self):
        rows = finance.ticket_transactions(
            make_booking(),
            make_pricing(convenience_fee=90.0, commission=50.0),
            event_state="Maharashtra",
        )
        self.assertEqual(len(rows), 2)
        tx = rows[0]
        self.assertEqual(tx.is_wb_customer, 1)
        self.assertEqual(tx.is_wb_event, 0)
        self.assertEqual(tx.event_state, "Maharashtra")
        self.assertAlmostEqual(tx.ticket_price, 500.0)
        self.assertAlmostEqual(tx.convenience_base_fee + tx.gst_on_convenience_base_fee, tx.convenience_fee)
        self.assertAlmostEqual(tx.actual_commission + tx.gst_on_actual_commission, tx.commission)
        self.assertAlmostEqual(tx.reimbursable_ticket_price, 450.0)


class AggregateTransactionTests(unittest.TestCase):
    def test_empty_input_gives_zero_summary(self):
        summary = finance.aggregate_transactions([])
        self.assertEqual(summary.total_sale_value, 0.0)
        self.assertEqual(summary.total_igst, 0.0)

    def test_intra_state_requires_both_customer_and_venue_in_home_state(self):
        home = make_transaction(id=1)
        away_venue = make_transaction(id=2, event_state="Maharashtra")
        away_customer = make_transaction(id=3, customer_state="Kerala", is_wb_event=1)
        summary = finance.aggregate_transactions([home, away_venue, away_customer])

        gst_per_ticket = home.gst_on_actual_commission + home.gst_on_convenience_base_fee
        self.assertAlmostEqual(summary.total_gst_wb, gst_per_ticket)
        self.assertAlmostEqual(summary.total_gst_other, 2 * gst_per_ticket)
        self.assertAlmostEqual(summary.total_cgst, gst_per_ticket / 2)
        self.assertAlmostEqual(summary.total_cgst, summary.total_sgst)
        self.assertAlmostEqual(summary.total_igst, 2 * gst_per_ticket)
        self.assertAlmostEqual(
            summary.total_gst_on_actual_commission_wb + summary.total_gst_on_actual_commission_other,
            summary.total_gst_on_actual_commission,
        )

    def test_stored_flags_override_state_names(self):
        flagged = make_transaction(customer_state="Unknown", event_state="Unknown", is_wb_customer=1, is_wb_event=1)
        summary = finance.aggregate_transactions([flagged])
        self.assertGreater(summary.total_cgst, 0)
        self.assertEqual(summary.total_igst, 0.0)

    def test_totals_follow_ticket_and_fee_sums(self):
        rows = [make_transaction(id=i, ticket_price=400.0 + i, customer_state="Goa") for i in range(3)]
        summary = finance.aggregate_transactions(rows)
        self.assertAlmostEqual(summary.total_ticket_price, 1203.0)
        self.assertAlmostEqual(summary.total_sale_value, 1203.0 + 150.0)
        self.assertAlmostEqual(summary.total_commission_base, summary.total_commission)
        self.assertAlmostEqual(summary.total_reimbursable_ticket_price, 1203.0 - 150.0)


if __name__ == "__main__":
    unittest.main()
