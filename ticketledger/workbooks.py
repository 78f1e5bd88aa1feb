from datetime import datetime
from io import BytesIO
from typing import Any, Dict, List, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SUMMARY_METRICS: List[Tuple[str, str, str]] = [
    ("Sale Value (Sum of All Tickets)", "A", "total_sale_value"),
    ("Ticket Price (Sum of All Base Prices)", "B", "total_ticket_price"),
    ("Commission (Sum of All Commissions)", "C", "total_commission"),
    ("Actual Commission", "D", "total_actual_commission"),
    ("GST on Actual Commission", "E", "total_gst_on_actual_commission"),
    ("GST on Actual Commission - WB", "F", "total_gst_on_actual_commission_wb"),
    ("GST on Actual Commission - Other", "G", "total_gst_on_actual_commission_other"),
    ("Reimbursable Ticket Price", "H", "total_reimbursable_ticket_price"),
    ("Convenience Fee (Sum of All Conv Fees)", "J", "total_convenience_fee"),
    ("Convenience Base Fee", "K", "total_convenience_base_fee"),
    ("GST on Convenience Base Fee", "L", "total_gst_on_convenience_base_fee"),
    ("GST on Convenience Base Fee - WB", "M", "total_gst_on_convenience_base_fee_wb"),
    ("GST on Convenience Base Fee - Other", "N", "total_gst_on_convenience_base_fee_other"),
    ("Commission Base", "O", "total_commission_base"),
    ("GST - WB (CGST + SGST)", "P", "total_gst_wb"),
    ("GST - Other (IGST)", "Q", "total_gst_other"),
    ("CGST (9%)", "R", "total_cgst"),
    ("SGST (9%)", "S", "total_sgst"),
    ("IGST (18%)", "T", "total_igst"),
]

FORMULA_REFERENCE = [
    "A = Ticket Price (from actual bookings)",
    "B = Convenience Fee (from actual bookings)",
    "C = Convenience Fee Base (84.745% of B)",
    "D = Convenience Fee GST (B - C)",
    "F = Commission (calculated from ticket price)",
    "G = Commission Base (84.745% of F)",
    "H = Commission GST (F - G)",
    "K = Reimbursable Ticket Price (A - F)",
    "Total Sale Value = A + B (Ticket Price + Convenience Fee)",
]

INDIVIDUAL_HEADERS = [
    "Invoice Number",
    "Booking ID",
    "Customer State",
    "Event Name",
    "Ticket Count",
    "Total Sale Value (A+B)",
    "Ticket Price (A)",
    "Convenience Fee (B)",
    "Conv Fee Base (C)",
    "Conv Fee GST (D)",
    "Commission (F)",
    "Commission Base (G)",
    "Commission GST (H)",
    "Reimbursable Price (K)",
    "Total GST WB",
    "Total GST Other",
    "CGST",
    "SGST",
    "IGST",
    "Booking Date",
]

INDIVIDUAL_AMOUNT_FIELDS = [
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
]


def money(value: Any) -> float:
    return round(float(value or 0), 2)


def _generated_label() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _header_block(sheet, title: str, report: Dict[str, Any]) -> None:
    sheet.append([title])
    sheet["A1"].font = Font(bold=True)
    sheet.append(["Date Range:", f"{report['start']} to {report['end']}"])


def _summary_rows(sheet, summary: Dict[str, Any], code_prefix: str, label_prefix: str) -> None:
    sheet.append(["Metric", "Code", "Value"])
    for label, code, field in SUMMARY_METRICS:
        sheet.append([f"{label_prefix} {label}", f"{code_prefix}{code}", money(summary.get(field))])


def financial_report_workbook(report: Dict[str, Any]) -> Workbook:
    """Workbook for an overall, event-wise or itemized financial report."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    report_type = report.get("report_type")
    items = report.get("items") or []

    if report_type in {"overall", "itemized"} and items:
        sheet = workbook.create_sheet("Itemized Transactions")
        _header_block(sheet, "Financial Report - Itemized Transactions (Sum of All Tickets)", report)
        sheet.append(["Generated:", _generated_label()])
        sheet.append([])
        sheet.append(
            [
                "Event Name",
                "Per Ticket Price",
                "Per Ticket Conv Fee",
                "Per Ticket Commission",
                "Per Ticket Actual Commission",
                "Per Ticket GST on Commission",
                "Per Ticket Total",
                "Quantity",
                "Total for All Tickets",
                "Customer State",
                "Event State",
                "Date",
            ]
        )
        for item in items:
            quantity = int(item.get("quantity") or 1)
            sheet.append(
                [
                    item["event_name"],
                    money(item["ticket_price"]),
                    money(item["convenience_fee"]),
                    money(item["commission"]),
                    money(item["actual_commission"]),
                    money(item["gst_on_actual_commission"]),
                    money(item["total_amount"]),
                    quantity,
                    money(item["total_amount"] * quantity),
                    item["customer_state"],
                    item["event_state"],
                    (item.get("created_at") or "")[:10],
                ]
            )

    overall = report.get("overall")
    if report_type == "overall" and overall:
        sheet = workbook.create_sheet("Overall Report")
        _header_block(sheet, "Financial Report - Overall Summary (Sum of All Individual Tickets)", report)
        sheet.append(["Generated:", _generated_label()])
        sheet.append([])
        _summary_rows(sheet, overall, "A", "Total")
        sheet.append([])
        sheet.append(["State-wise Breakdown (Sum of All Individual Tickets)"])
        sheet.append(["State", "Sale Value", "Ticket Price", "Commission", "Actual Commission", "GST on Commission"])
        for state in report.get("state_wise") or []:
            sheet.append(
                [
                    state["state"],
                    money(state["total_sale_value"]),
                    money(state["total_ticket_price"]),
                    money(state["total_commission"]),
                    money(state["total_actual_commission"]),
                    money(state["total_gst_on_actual_commission"]),
                ]
            )

    event_wise = report.get("event_wise")
    if report_type == "event" and event_wise:
        sheet = workbook.create_sheet("Event Report")
        _header_block(sheet, "Financial Report - Event Wise (Sum of All Individual Tickets)", report)
        sheet.append(["Event:", event_wise["event_name"]])
        sheet.append(["Generated:", _generated_label()])
        sheet.append([])
        _summary_rows(sheet, event_wise, "B", "Event")

    if not workbook.sheetnames:
        sheet = workbook.create_sheet("Report")
        sheet.append(["No report data for the selected filters."])
    return workbook


def individual_bookings_workbook(report: Dict[str, Any]) -> Workbook:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Individual Bookings Report"
    _header_block(sheet, "Individual Customer Bookings Financial Report", report)
    sheet.append(["Generated:", _generated_label()])
    sheet.append([])
    sheet.append(["Note: Each row represents a separate booking by customer state"])
    sheet.append(["Formula Reference:"])
    for line in FORMULA_REFERENCE:
        sheet.append([line])
    sheet.append([])
    sheet.append(INDIVIDUAL_HEADERS)

    for row in report.get("bookings") or []:
        sheet.append(
            [row["invoice_number"], row["booking_id"], row["customer_state"], row["event_name"], row["ticket_count"]]
            + [money(row[field]) for field in INDIVIDUAL_AMOUNT_FIELDS]
            + [row["booking_date"]]
        )

    totals = report.get("totals")
    if totals:
        sheet.append(
            ["TOTAL", "TOTAL", "ALL STATES", "ALL EVENTS", int(totals["ticket_count"])]
            + [money(totals[field]) for field in INDIVIDUAL_AMOUNT_FIELDS]
            + ["All Dates"]
        )
    return workbook


def workbook_bytes(workbook: Workbook) -> BytesIO:
    output = BytesIO()
    workbook.save(output)
    output.seek(0)
    return output


def financial_report_filename(report: Dict[str, Any]) -> str:
    return f"Financial_Report_{report['report_type']}_{report['start']}_to_{report['end']}.xlsx"


def individual_bookings_filename(report: Dict[str, Any]) -> str:
    return f"Individual_Customer_Bookings_Report_{report['start']}_to_{report['end']}.xlsx"
