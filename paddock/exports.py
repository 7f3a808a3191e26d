from __future__ import annotations

import csv
from io import BytesIO, StringIO
from pathlib import Path

from fastapi.templating import Jinja2Templates
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from starlette.responses import Response

from . import models
from .models import utcnow
from .startlist import StartList

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

STARTLIST_COLUMNS = ["Start Number", "Driver Name", "Class", "Vehicle", "License Plate", "Status"]

READINESS_LABELS = {
    "ready": "Ready",
    "pending_technical": "Pending technical",
    "pending_checkin": "Pending check-in",
    "pending": "Pending",
}


def csv_response(filename: str, text: str) -> Response:
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def html_response(filename: str, text: str) -> Response:
    return Response(
        content=text,
        media_type="text/html; charset=utf-8",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


def pdf_response(filename: str, data: bytes) -> Response:
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _vehicle_label(vehicle: dict | None) -> str:
    if not vehicle:
        return ""
    label = f"{vehicle['make']} {vehicle['model']}"
    if vehicle.get("year"):
        label += f" ({vehicle['year']})"
    return label


def startlist_csv(startlist: StartList) -> str:
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(STARTLIST_COLUMNS)
    for e in startlist.entries:
        w.writerow([
            e.start_number,
            e.driver_name,
            e.class_name,
            _vehicle_label(e.vehicle),
            (e.vehicle or {}).get("license_plate") or "",
            READINESS_LABELS[e.readiness],
        ])
    return buf.getvalue()


def startlist_html(startlist: StartList, event: models.Event) -> str:
    return templates.get_template("startlist.html").render(
        event=event,
        entries=startlist.entries,
        stats=startlist.stats,
        vehicle_label=_vehicle_label,
        labels=READINESS_LABELS,
        generated_at=utcnow(),
    )


# ---------------------------
# Weight control reports (PDF)
# ---------------------------

_COLUMNS = [
    ("#", 12),
    ("Driver", 48),
    ("Class", 30),
    ("Heat", 24),
    ("Weight", 20),
    ("Limit", 26),
    ("Result", 26),
]


def _header(c: canvas.Canvas, event: models.Event, title: str, page_w: float, y: float) -> float:
    c.setFont("Helvetica-Bold", 16)
    c.drawString(15 * mm, y, title)
    y -= 7 * mm
    c.setFont("Helvetica", 10)
    c.drawString(15 * mm, y, f"{event.title}  |  {event.location or ''}  |  {event.start_date:%Y-%m-%d}")
    c.drawRightString(page_w - 15 * mm, y, f"Generated {utcnow():%Y-%m-%d %H:%M} UTC")
    return y - 10 * mm


def _limit_label(row: dict) -> str:
    wl = row.get("weight_limit")
    if not wl:
        return "-"
    return f"{wl['min_weight']:g}-{wl['max_weight']:g}"


def weight_report_pdf(event: models.Event, records: list[dict]) -> bytes:
    bio = BytesIO()
    page_w, page_h = A4
    c = canvas.Canvas(bio, pagesize=A4)
    c.setTitle(f"Weight control - {event.title}")

    def table_head(y: float) -> float:
        c.setFont("Helvetica-Bold", 9)
        x = 15 * mm
        for name, width in _COLUMNS:
            c.drawString(x, y, name)
            x += width * mm
        c.line(15 * mm, y - 2 * mm, page_w - 15 * mm, y - 2 * mm)
        return y - 7 * mm

    y = _header(c, event, "Weight control report", page_w, page_h - 20 * mm)
    y = table_head(y)
    c.setFont("Helvetica", 9)
    for row in records:
        if y < 20 * mm:
            c.showPage()
            y = table_head(page_h - 20 * mm)
            c.setFont("Helvetica", 9)
        values = [
            str(row["start_number"]),
            (row.get("name") or "-")[:28],
            (row.get("class") or "-")[:18],
            row["heat"],
            f"{row['measured_weight']:.1f}",
            _limit_label(row),
            row["result"],
        ]
        x = 15 * mm
        for value, (_, width) in zip(values, _COLUMNS):
            c.drawString(x, y, value)
            x += width * mm
        y -= 6 * mm

    y -= 4 * mm
    c.setFont("Helvetica-Bold", 9)
    passed = sum(1 for r in records if r["result"] == "PASS")
    c.drawString(15 * mm, max(y, 12 * mm), f"Readings: {len(records)}   Passed: {passed}   Other: {len(records) - passed}")
    c.showPage()
    c.save()
    return bio.getvalue()


def weight_record_pdf(event: models.Event, row: dict) -> bytes:
    bio = BytesIO()
    page_w, page_h = A4
    c = canvas.Canvas(bio, pagesize=A4)
    c.setTitle(f"Weight control #{row['start_number']} - {event.title}")
    y = _header(c, event, f"Weight control certificate #{row['start_number']}", page_w, page_h - 20 * mm)

    lines = [
        ("Driver", row.get("name") or "-"),
        ("Class", row.get("class") or "-"),
        ("Vehicle", _vehicle_label(row.get("vehicle")) or "-"),
        ("Heat", row["heat"]),
        ("Measured weight", f"{row['measured_weight']:.1f} kg"),
        ("Class limit", _limit_label(row)),
        ("Result", row["result"]),
        ("Controller", row.get("controller") or "-"),
        ("Controlled at", f"{row['controlled_at']:%Y-%m-%d %H:%M}"),
        ("Notes", row.get("notes") or ""),
    ]
    for label, value in lines:
        c.setFont("Helvetica-Bold", 11)
        c.drawString(15 * mm, y, label)
        c.setFont("Helvetica", 11)
        c.drawString(60 * mm, y, str(value))
        y -= 8 * mm
    c.showPage()
    c.save()
    return bio.getvalue()
