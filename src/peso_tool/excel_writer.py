"""Excel formateado con la serie de peso para entregar al profesional."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from peso_tool.model import ChartSeries

_DIA_SEMANA: tuple[str, ...] = ("lun", "mar", "mie", "jue", "vie", "sab", "dom")

_HEADER_MAP: dict[str, str] = {
    "weekday": "Día",
    "date": "Fecha",
    "weight_kg": "Peso (kg)",
    "moving_average": "Media 7\n(kg)",
    "source": "Origen",
    "is_outlier": "Anomalía",
}

_SOURCE_LABELS: dict[str, str] = {
    "patient": "paciente",
    "professional": "profesional",
}

_OUTLIER_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")


@dataclass(frozen=True)
class ExcelLayout:
    """Layout/formatting configuration for the weight report."""

    sheet_name: str = "Serie de peso"
    summary_sheet_name: str = "Resumen"


def chart_to_frame(series: ChartSeries) -> pd.DataFrame:
    """Flatten chart points into one row per measurement."""
    rows = [
        {
            "weekday": _DIA_SEMANA[point.day.weekday()],
            "date": point.day,
            "weight_kg": point.weight_kg,
            "moving_average": point.moving_average,
            "source": _SOURCE_LABELS.get(point.source.value, point.source.value),
            "is_outlier": "sí" if point.is_outlier else "",
        }
        for point in series.points
    ]
    return pd.DataFrame(rows, columns=list(_HEADER_MAP))


def summary_to_frame(series: ChartSeries) -> pd.DataFrame:
    """Two-column label/value table with the series statistics."""
    stats = series.statistics
    return pd.DataFrame(
        {
            "Indicador": [
                "Peso inicial (kg)",
                "Peso final (kg)",
                "Cambio (kg)",
                "Cambio (%)",
                "Cambio semanal medio (kg)",
                "Tendencia",
            ],
            "Valor": [
                stats.start_weight,
                stats.end_weight,
                stats.change,
                stats.change_percent,
                stats.avg_weekly_change,
                stats.trend.value,
            ],
        }
    )


def write_chart_xlsx(series: ChartSeries, out_path: Path, layout: ExcelLayout) -> None:
    """Write a formatted Excel file suitable for printing.

    Args:
        series: Chart series for one patient and range.
        out_path: Output path for the XLSX file.
        layout: Excel layout parameters.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)

    export_df = chart_to_frame(series).rename(columns=_HEADER_MAP)
    summary_df = summary_to_frame(series)

    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        export_df.to_excel(writer, index=False, sheet_name=layout.sheet_name)
        summary_df.to_excel(writer, index=False, sheet_name=layout.summary_sheet_name)
        _format_sheet(writer.book[layout.sheet_name])
        _format_summary(writer.book[layout.summary_sheet_name])


def _border() -> Border:
    thin = Side(style="thin")
    return Border(left=thin, right=thin, top=thin, bottom=thin)


def _style_header_row(ws: Any) -> None:
    """Aplica fuente negrita, alineación y borde a la fila de cabecera."""
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.alignment = center
        cell.border = _border()


def _style_body_rows(ws: Any, outlier_col: int | None) -> None:
    """Aplica alineación y borde; resalta filas marcadas como anomalía."""
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for row in ws.iter_rows(min_row=2):
        flagged = outlier_col is not None and bool(row[outlier_col - 1].value)
        for cell in row:
            cell.alignment = center
            cell.border = _border()
            if flagged:
                cell.fill = _OUTLIER_FILL
        ws.row_dimensions[row[0].row].height = 15


def _get_header_col_index(ws: Any) -> dict[str, int]:
    """Devuelve mapa nombre de cabecera -> índice de columna (1-based)."""
    headers = [str(cell.value) for cell in ws[1]]
    return {name: idx + 1 for idx, name in enumerate(headers)}


def _apply_column_widths(ws: Any, col_index: dict[str, int]) -> None:
    """Establece anchos de columna para evitar ###."""
    widths = [
        ("Día", 6),
        ("Fecha", 12),
        ("Peso (kg)", 11),
        ("Media 7\n(kg)", 10),
        ("Origen", 13),
        ("Anomalía", 10),
    ]
    for header, width in widths:
        idx = col_index.get(header)
        if idx is not None:
            letter = ws.cell(row=1, column=idx).column_letter
            ws.column_dimensions[letter].width = width


def _apply_number_formats(ws: Any, col_index: dict[str, int]) -> None:
    """Aplica formatos numéricos por cabecera."""
    fmt_map: dict[str, str] = {
        "Fecha": "dd/mm/yyyy",
        "Peso (kg)": "0.0",
        "Media 7\n(kg)": "0.0",
    }
    for row in ws.iter_rows(min_row=2):
        for header, fmt in fmt_map.items():
            idx = col_index.get(header)
            if idx is not None:
                row[idx - 1].number_format = fmt


def _format_sheet(ws: Any) -> None:
    """Apply borders, widths and number formats to the series sheet.

    Args:
        ws: openpyxl worksheet.
    """
    col_index = _get_header_col_index(ws)
    _style_header_row(ws)
    _style_body_rows(ws, col_index.get("Anomalía"))
    _apply_column_widths(ws, col_index)
    _apply_number_formats(ws, col_index)


def _format_summary(ws: Any) -> None:
    _style_header_row(ws)
    _style_body_rows(ws, None)
    ws.column_dimensions["A"].width = 28
    ws.column_dimensions["B"].width = 14
