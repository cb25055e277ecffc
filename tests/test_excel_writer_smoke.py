from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import cast

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from peso_tool.excel_writer import ExcelLayout, _format_sheet, write_chart_xlsx
from peso_tool.model import (
    ChartPoint,
    ChartSeries,
    MeasurementSource,
    SeriesStatistics,
    Trend,
)


def _series() -> ChartSeries:
    return ChartSeries(
        points=[
            ChartPoint(
                day=date(2025, 11, 10),
                weight_kg=80.0,
                source=MeasurementSource.PATIENT,
                is_outlier=False,
                moving_average=80.0,
            ),
            ChartPoint(
                day=date(2025, 11, 11),
                weight_kg=76.5,
                source=MeasurementSource.PROFESSIONAL,
                is_outlier=True,
                moving_average=78.3,
            ),
        ],
        statistics=SeriesStatistics(
            start_weight=80.0,
            end_weight=76.5,
            change=-3.5,
            trend=Trend.DECREASING,
            change_percent=-4.4,
            avg_weekly_change=-24.5,
        ),
    )


def test_write_chart_xlsx_happy_path_and_formatting(tmp_path: Path) -> None:
    """Una fila por pesaje: Día, Fecha, Peso, Media 7, Origen, Anomalía."""
    out = tmp_path / "nested" / "out.xlsx"
    write_chart_xlsx(_series(), out, ExcelLayout())

    wb = load_workbook(out)
    ws = cast(Worksheet, wb[ExcelLayout().sheet_name])

    headers = [cell.value for cell in ws[1]]
    assert headers[0] == "Día"
    assert "Fecha" in headers
    assert "Peso (kg)" in headers
    assert "Origen" in headers
    assert "weight_kg" not in headers

    assert ws.cell(row=2, column=1).value == "lun"
    assert ws.cell(row=3, column=1).value == "mar"
    peso_col = headers.index("Peso (kg)") + 1
    assert ws.cell(row=2, column=peso_col).value == 80.0
    origen_col = headers.index("Origen") + 1
    assert ws.cell(row=3, column=origen_col).value == "profesional"
    anomalia_col = headers.index("Anomalía") + 1
    assert ws.cell(row=3, column=anomalia_col).value == "sí"

    assert ws.column_dimensions["A"].width == 6
    fecha_letter = get_column_letter(headers.index("Fecha") + 1)
    assert ws.column_dimensions[fecha_letter].width == 12

    assert ws.cell(row=2, column=peso_col).number_format == "0.0"
    fecha_cell = ws.cell(row=2, column=headers.index("Fecha") + 1)
    assert fecha_cell.number_format == "dd/mm/yyyy"

    # Solo la fila marcada como anomalía va resaltada
    assert ws.cell(row=3, column=peso_col).fill.fgColor.rgb.endswith("FFF2CC")
    assert ws.cell(row=2, column=peso_col).fill.fill_type is None


def test_write_chart_xlsx_summary_sheet(tmp_path: Path) -> None:
    out = tmp_path / "out.xlsx"
    write_chart_xlsx(_series(), out, ExcelLayout())
    ws = load_workbook(out)[ExcelLayout().summary_sheet_name]
    rows = {
        row[0].value: row[1].value for row in ws.iter_rows(min_row=2) if row[0].value
    }
    assert rows["Cambio (kg)"] == -3.5
    assert rows["Tendencia"] == "decreasing"
    assert ws.column_dimensions["A"].width == 28


def test_write_chart_xlsx_empty_series(tmp_path: Path) -> None:
    """Sin pesajes se escribe solo la cabecera."""
    empty = ChartSeries(
        points=[],
        statistics=SeriesStatistics(
            start_weight=None, end_weight=None, change=0.0, trend=Trend.STABLE
        ),
    )
    out = tmp_path / "out.xlsx"
    write_chart_xlsx(empty, out, ExcelLayout())
    ws = load_workbook(out)[ExcelLayout().sheet_name]
    assert ws.max_row == 1
    assert ws.cell(row=1, column=1).value == "Día"


def test_format_sheet_handles_missing_headers() -> None:
    wb = Workbook()
    ws = cast(Worksheet, wb.active)
    ws.append(["Solo"])
    ws.append([1])

    _format_sheet(ws)

    assert ws.cell(row=1, column=1).font.bold is True
    assert ws.cell(row=2, column=1).alignment.horizontal == "center"
