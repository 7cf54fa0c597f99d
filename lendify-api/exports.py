import csv
import io
import re
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from errors import InvalidInput, StoreError
from loans import DEFAULT_LOAN_LIMIT_DAYS, describe_loan, utcnow
from models import Snapshot
from notices import Notice
import views

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["Nama", "Deskripsi", "Kategori", "Jumlah", "TanggalBeli"]
EXPORT_FILENAME = "inventaris.csv"

# --------------------------------------------------------------------------
# Import
# --------------------------------------------------------------------------
def parse_name_csv(content: str) -> List[str]:
    """
    One name per line, first line is a header. Blank lines are ignored;
    a file without at least a header and one name yields nothing.
    """
    lines = [line for line in re.split(r"\r?\n", content or "") if line.strip()]
    if len(lines) < 2:
        return []
    return [line.strip() for line in lines[1:]]


def import_users(state, content: str) -> Tuple[int, Notice]:
    names = parse_name_csv(content)
    if not names:
        raise InvalidInput("File CSV tidak berisi nama.")
    with state.mutation() as snapshot:
        unit_id = snapshot.units[0].id if snapshot.units else None
        try:
            ids = state.store.users.insert([{"name": n, "unit_id": unit_id} for n in names])
        except StoreError as e:
            raise e.relabel("Gagal impor user.") from e
        logger.info("imported %d users into unit %s", len(ids), unit_id)
        notice = state.notices.post("Pengguna berhasil diimpor!", "success")
    return len(ids), notice


def import_units(state, content: str) -> Tuple[int, Notice]:
    names = parse_name_csv(content)
    if not names:
        raise InvalidInput("File CSV tidak berisi nama.")
    with state.mutation():
        try:
            ids = state.store.units.insert([{"name": n} for n in names])
        except StoreError as e:
            raise e.relabel("Gagal impor unit.") from e
        logger.info("imported %d units", len(ids))
        notice = state.notices.post("Unit berhasil diimpor!", "success")
    return len(ids), notice

# --------------------------------------------------------------------------
# Inventory CSV
# --------------------------------------------------------------------------
def export_items_csv(snapshot: Snapshot) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(EXPORT_COLUMNS)
    rows = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for item in snapshot.items:
        category = snapshot.category(item.category_id)
        rows.writerow([
            item.name,
            item.description,
            category.name if category else "Unknown",
            item.quantity,
            item.purchase_date.isoformat() if item.purchase_date else "",
        ])
    return buf.getvalue()

# --------------------------------------------------------------------------
# PDF report
# --------------------------------------------------------------------------
TABLE_STYLE = TableStyle([
    ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 8),
    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.white]),
    ("LEFTPADDING", (0, 0), (-1, -1), 4),
    ("RIGHTPADDING", (0, 0), (-1, -1), 4),
])


def report_filename(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"LendifyIT-Laporan-{now.date().isoformat()}.pdf"


def _section(story, styles, title: str, table_data, empty: str) -> None:
    story.append(Paragraph(title, styles["Heading2"]))
    if len(table_data) <= 1:
        story.append(Paragraph(empty, styles["Normal"]))
    else:
        table = Table(table_data, repeatRows=1)
        table.setStyle(TABLE_STYLE)
        story.append(table)
    story.append(Spacer(1, 12))


def render_report_pdf(snapshot: Snapshot, now: Optional[datetime] = None) -> bytes:
    now = now or utcnow()
    data = views.summary(snapshot, now)
    styles = getSampleStyleSheet()
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, leftMargin=36, rightMargin=36, topMargin=36, bottomMargin=36)

    story = [
        Paragraph("Laporan Inventaris LendifyIT", styles["Title"]),
        Paragraph(f"Dibuat: {now.strftime('%Y-%m-%d %H:%M')} UTC", styles["Normal"]),
        Spacer(1, 12),
    ]

    _section(story, styles, "Ringkasan", [
        ["Keterangan", "Jumlah"],
        ["Total Aset", str(data["total_items"])],
        ["Dipinjam", str(data["active_loans"])],
        ["Terlambat", str(data["overdue_loans"])],
    ], "")

    _section(story, styles, "Tren 7 Hari",
             [["Tanggal", "Peminjaman"]] + [[d["date"], str(d["count"])] for d in data["last_7_days"]],
             "Tidak ada data.")

    _section(story, styles, "Barang Terpopuler",
             [["Barang", "Dipinjam"]] + [[p["name"], f"{p['count']}x"] for p in data["popular_items"]],
             "Belum ada peminjaman.")

    _section(story, styles, "Distribusi Kategori",
             [["Kategori", "Jumlah", "Persentase"]]
             + [[c["name"], str(c["count"]), f"{c['percent']}%"] for c in data["by_category"]],
             "Belum ada barang.")

    _section(story, styles, "Peminjaman Terlambat",
             [["Barang", "Peminjam", "Tanggal Pinjam", "Durasi", "Rencana"]]
             + [[l["item_name"], l["borrower_name"], l["borrow_date"][:10], l["elapsed"],
                 f"{l['expected_duration'] or DEFAULT_LOAN_LIMIT_DAYS} Hari"] for l in data["overdue"]],
             "Tidak ada barang terlambat.")

    active = [describe_loan(l, now) for l in snapshot.active_loans]
    _section(story, styles, "Sedang Dipinjam",
             [["Barang", "Peminjam", "Tanggal Pinjam", "Durasi", "Keperluan"]]
             + [[l["item_name"], l["borrower_name"], l["borrow_date"][:10], l["duration"], l["purpose"] or "-"]
                for l in active],
             "Tidak ada barang yang sedang dipinjam.")

    doc.build(story)
    pdf_bytes = buffer.getvalue()
    buffer.close()
    logger.info("report rendered (%d bytes)", len(pdf_bytes))
    return pdf_bytes
