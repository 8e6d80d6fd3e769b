import io

from reportlab.pdfgen import canvas as pdf_canvas
from reportlab.lib.pagesizes import A4
from reportlab.platypus import Table, TableStyle
from reportlab.lib import colors as rl_colors

from .models import CurrentUser, DailySummary

ROW_HEIGHT = 18
BOTTOM_MARGIN = 60


def _fmt(value) -> str:
    return f"{value:g}" if isinstance(value, float) else str(value)


def history_pdf(user: CurrentUser, summaries: list[DailySummary]) -> io.BytesIO:
    """Build the training history report in memory; one row per set."""
    buf = io.BytesIO()
    c = pdf_canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    c.setFont('Helvetica-Bold', 16)
    c.drawString(50, height - 50, f"Training History - {user.email or 'Anonymous'}")
    c.setFont('Helvetica', 11)
    grand_total = sum(s.total_volume for s in summaries)
    c.drawString(50, height - 75, f"Days logged: {len(summaries)}  Total volume: {_fmt(grand_total)} kg")

    table_data = [["Date", "Exercise", "Set", "Weight", "Reps", "Volume"]]
    for day in summaries:
        for e in day.sets:
            table_data.append([
                day.date, e.exercise, str(e.set_number),
                f"{_fmt(e.weight)} kg", str(e.reps), _fmt(e.volume),
            ])
        table_data.append([day.date, "Day total", "", "", "", _fmt(day.total_volume)])

    y = height - 110
    # Table is split into page-sized chunks; header row repeated on each page.
    rows_per_page = max(1, int((y - BOTTOM_MARGIN) / ROW_HEIGHT) - 1)
    body = table_data[1:] or [["-", "No sets logged yet.", "", "", "", ""]]
    for start in range(0, len(body), rows_per_page):
        chunk = [table_data[0]] + body[start:start + rows_per_page]
        if start:
            c.showPage()
            c.setFont('Helvetica-Bold', 14)
            c.drawString(50, height - 50, 'Training History (Continued)')
            c.setFont('Helvetica', 11)
            y = height - 90
        table = Table(chunk, colWidths=[75, 170, 45, 75, 50, 80], rowHeights=[ROW_HEIGHT] * len(chunk))
        style = [
            ("BACKGROUND", (0, 0), (-1, 0), rl_colors.lightblue),
            ("GRID", (0, 0), (-1, -1), 0.5, rl_colors.black),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]
        for i, row in enumerate(chunk):
            if row[1] == "Day total":
                style.append(("FONTNAME", (0, i), (-1, i), "Helvetica-Bold"))
        table.setStyle(TableStyle(style))
        table.wrapOn(c, width - 100, y)
        table.drawOn(c, 50, y - ROW_HEIGHT * len(chunk))
    c.save()
    buf.seek(0)
    return buf
