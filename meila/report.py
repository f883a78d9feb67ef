"""Spreadsheet export of the restock (shopping) list."""
from __future__ import annotations

from io import BytesIO
from typing import Iterable, List

import xlwt

from .models import Item
from .predictor import estimate_days_remaining

REPORT_COLUMNS = ["物品名称", "库存数量", "单位", "提醒阈值", "建议补货量", "预计可用天数"]


def restock_rows(items: Iterable[Item]) -> List[List[object]]:
    rows: List[List[object]] = []
    for item in items:
        if not item.is_low_stock:
            continue
        days = estimate_days_remaining(item)
        rows.append(
            [
                item.name,
                item.quantity,
                item.unit,
                item.threshold,
                max(item.target_quantity - item.quantity, 0),
                "" if days is None else days,
            ]
        )
    return rows


def restock_report_to_xls(items: Iterable[Item], *, generated_label: str) -> bytes:
    """Render low-stock items as an ``.xls`` workbook."""

    workbook = xlwt.Workbook()
    sheet = workbook.add_sheet("待补货")

    title_style = xlwt.easyxf(
        "font: bold on, height 360; align: horiz center, vert center"
    )
    metadata_style = xlwt.easyxf(
        "font: height 220; align: horiz left, vert center"
    )
    header_style = xlwt.easyxf(
        "font: bold on; align: horiz center, vert center;"
        "borders: left thin, right thin, top thin, bottom thin"
    )
    text_style = xlwt.easyxf(
        "align: horiz left, vert center;"
        "borders: left thin, right thin, top thin, bottom thin"
    )
    number_style = xlwt.easyxf(
        "align: horiz center, vert center;"
        "borders: left thin, right thin, top thin, bottom thin"
    )

    column_widths = [28, 12, 10, 12, 14, 14]
    for index, width in enumerate(column_widths):
        sheet.col(index).width = 256 * width

    rows = restock_rows(items)
    last_column = len(REPORT_COLUMNS) - 1
    sheet.write_merge(0, 0, 0, last_column, "待补货清单", title_style)
    sheet.write_merge(
        1,
        1,
        0,
        last_column,
        f"制表时间：{generated_label}    共 {len(rows)} 项",
        metadata_style,
    )

    header_row_index = 3
    for col_index, column in enumerate(REPORT_COLUMNS):
        sheet.write(header_row_index, col_index, column, header_style)

    for offset, row in enumerate(rows, start=1):
        row_index = header_row_index + offset
        for col_index, value in enumerate(row):
            style = number_style if isinstance(value, int) else text_style
            sheet.write(row_index, col_index, value, style)

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


__all__ = ["REPORT_COLUMNS", "restock_report_to_xls", "restock_rows"]
