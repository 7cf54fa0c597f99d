import pytest

import exports
from conftest import NOW, add_loan
from errors import InvalidInput, StoreError
from models import Snapshot


def test_parse_name_csv_skips_header_and_blank_lines():
    content = "nama\r\nAndi\r\n\r\n  Citra  \nDodi\n"
    assert exports.parse_name_csv(content) == ["Andi", "Citra", "Dodi"]


@pytest.mark.parametrize("content", ["", "nama", "nama\n\n"])
def test_parse_name_csv_without_names(content):
    assert exports.parse_name_csv(content) == []


def test_import_users_assigns_first_unit(state, store):
    first_unit = state.snapshot.units[0]
    count, notice = exports.import_users(state, "nama\nAndi\nCitra\nDodi\n")

    assert count == 3
    assert notice.message == "Pengguna berhasil diimpor!"
    imported = [u for u in state.snapshot.users if u.name in ("Andi", "Citra", "Dodi")]
    assert len(imported) == 3
    assert {u.unit_id for u in imported} == {first_unit.id}


def test_import_units(state):
    count, _ = exports.import_units(state, "unit\nLegal\nProcurement")
    assert count == 2
    assert {"Legal", "Procurement"} <= {u.name for u in state.snapshot.units}


def test_import_without_names_is_rejected(state, store):
    with pytest.raises(InvalidInput):
        exports.import_users(state, "nama\n")
    assert store.all_calls() == []


def test_import_failure_keeps_snapshot(state, store):
    store.users.fail.add("insert")
    before = state.snapshot
    with pytest.raises(StoreError) as exc:
        exports.import_users(state, "nama\nAndi")
    assert exc.value.message == "Gagal impor user."
    assert state.snapshot is before


def test_export_items_csv(state, store):
    store.items.add(name='Kabel "HDMI"', description="2 meter", category_id=99,
                    quantity=4, purchase_date=None)
    state.refresh()

    lines = exports.export_items_csv(state.snapshot).splitlines()
    assert lines[0] == "Nama,Deskripsi,Kategori,Jumlah,TanggalBeli"
    assert len(lines) == 5
    assert '"Dell UltraSharp 27","Monitor 4K USB-C","Monitor","0","2022-11-20"' in lines
    assert '"Kabel ""HDMI""","2 meter","Unknown","4",""' in lines


def test_report_filename():
    assert exports.report_filename(NOW) == "LendifyIT-Laporan-2024-05-20.pdf"


def test_render_report_pdf(state, store):
    add_loan(store, 1, days_ago=10)
    add_loan(store, 3, days_ago=2)
    add_loan(store, 3, days_ago=3, returned=True)
    state.refresh()

    pdf = exports.render_report_pdf(state.snapshot, NOW)
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 1000


def test_render_report_pdf_for_empty_snapshot():
    assert exports.render_report_pdf(Snapshot(), NOW).startswith(b"%PDF")
