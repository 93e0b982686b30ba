"""Price list export (CSV and XLSX)."""

import io
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Union

from openpyxl import Workbook

from pricesync.db.models import Product

HEADERS = ("Наименование товара", "Артикул Каспи", "Артикул поставщика", "Цена")
COLUMN_WIDTHS = {"A": 50, "B": 20, "C": 25, "D": 15}
SHEET_TITLE = "Прайс-лист"
NOT_SPECIFIED = "Не указано"
BOM = "\ufeff"

Price = Union[Decimal, int, float]


@dataclass(frozen=True)
class PriceListRow:
    name: str
    kaspi_article: str
    supplier_article: str
    price: Price


def pricelist_rows(products: Iterable[Product]) -> list[PriceListRow]:
    """Map a marketplace's products to export rows."""
    return [
        PriceListRow(
            name=p.name_marketplace or NOT_SPECIFIED,
            kaspi_article=p.marketplace_article or NOT_SPECIFIED,
            supplier_article=p.supplier_article or NOT_SPECIFIED,
            price=p.current_price if p.current_price is not None else 0,
        )
        for p in products
    ]


def format_price(price: Price) -> str:
    """Integral prices print without a fractional part."""
    value = price if isinstance(price, Decimal) else Decimal(str(price))
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")


def _quoted(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def export_csv(rows: Iterable[PriceListRow]) -> bytes:
    """Semicolon-delimited CSV with a leading BOM; the name column is always quoted."""
    lines = [";".join((_quoted(HEADERS[0]), *HEADERS[1:]))]
    for row in rows:
        lines.append(
            ";".join(
                (
                    _quoted(row.name),
                    row.kaspi_article,
                    row.supplier_article,
                    format_price(row.price),
                )
            )
        )
    return (BOM + "\n".join(lines) + "\n").encode("utf-8")


def export_xlsx(rows: Iterable[PriceListRow]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append(list(HEADERS))
    for row in rows:
        price = row.price
        sheet.append([
            row.name,
            row.kaspi_article,
            row.supplier_article,
            float(price) if isinstance(price, Decimal) else price,
        ])
    for column, width in COLUMN_WIDTHS.items():
        sheet.column_dimensions[column].width = width

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_filename(file_format: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"kaspi_pricelist_{today.isoformat()}.{file_format}"
