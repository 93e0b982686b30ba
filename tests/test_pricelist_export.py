"""Tests for price list export."""

import io
from datetime import date
from decimal import Decimal

from openpyxl import load_workbook

from pricesync.db.models import Product
from pricesync.export.pricelist import (
    HEADERS,
    PriceListRow,
    export_csv,
    export_filename,
    export_xlsx,
    format_price,
    pricelist_rows,
)


def test_csv_layout():
    content = export_csv([PriceListRow("Phone", "K1", "S1", 50000)])

    assert content.startswith("\ufeff".encode("utf-8"))
    lines = content.decode("utf-8-sig").split("\n")
    assert lines[0] == '"Наименование товара";Артикул Каспи;Артикул поставщика;Цена'
    assert lines[1] == '"Phone";K1;S1;50000'


def test_csv_escapes_quotes_in_names():
    content = export_csv([PriceListRow('Case "Pro"', "K2", "S2", Decimal("1500.50"))])
    assert content.decode("utf-8-sig").split("\n")[1] == '"Case ""Pro""";K2;S2;1500.5'


def test_format_price():
    assert format_price(Decimal("50000.00")) == "50000"
    assert format_price(50000) == "50000"
    assert format_price(Decimal("1100.50")) == "1100.5"
    assert format_price(0) == "0"


def test_rows_fill_missing_values():
    rows = pricelist_rows([Product(supplier_article="S1", name_supplier="x")])
    assert rows == [PriceListRow("Не указано", "Не указано", "S1", 0)]


def test_xlsx_sheet():
    content = export_xlsx([PriceListRow("Phone", "K1", "S1", Decimal("50000"))])

    sheet = load_workbook(io.BytesIO(content)).active
    assert sheet.title == "Прайс-лист"
    assert tuple(c.value for c in sheet[1]) == HEADERS
    assert [c.value for c in sheet[2]] == ["Phone", "K1", "S1", 50000]
    assert sheet.column_dimensions["A"].width == 50
    assert sheet.column_dimensions["D"].width == 15


def test_export_filename():
    assert export_filename("xlsx", date(2026, 3, 1)) == "kaspi_pricelist_2026-03-01.xlsx"
    assert export_filename("csv", date(2026, 3, 1)) == "kaspi_pricelist_2026-03-01.csv"
