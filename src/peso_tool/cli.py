"""CLI para registrar pesajes y consultar adherencia y tendencia."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from dataclasses import replace
from datetime import date, datetime, tzinfo
from pathlib import Path

from dateutil.parser import isoparse

from peso_tool.chart import VIEWS, period_range, view_range
from peso_tool.clock import get_zone, to_local
from peso_tool.config import MeasurementPolicy
from peso_tool.errors import MeasurementError
from peso_tool.excel_writer import ExcelLayout, write_chart_xlsx
from peso_tool.model import Measurement, MeasurementPatch, MeasurementSource
from peso_tool.service import MeasurementService
from peso_tool.storage import SQLiteStore

logger = logging.getLogger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Registro de pesajes y seguimiento de adherencia."
    )
    parser.add_argument(
        "--db",
        default=str(Path.cwd() / "peso_tool.sqlite3"),
        help="Ruta de la base SQLite (default: ./peso_tool.sqlite3).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log detallado.")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Registrar un pesaje.")
    add.add_argument("owner")
    add.add_argument("weight", type=float)
    add.add_argument("--at", help="Instante ISO 8601 (default: ahora).")
    add.add_argument(
        "--source",
        choices=[s.value for s in MeasurementSource],
        default=MeasurementSource.PATIENT.value,
    )
    add.add_argument("--note")
    add.add_argument("--by", help="Usuario que carga el pesaje (default: owner).")

    edit = sub.add_parser("edit", help="Editar peso o nota de un pesaje propio.")
    edit.add_argument("id")
    edit.add_argument("user")
    edit.add_argument("--weight", type=float)
    edit.add_argument("--note")

    delete = sub.add_parser("delete", help="Borrar un pesaje propio.")
    delete.add_argument("id")
    delete.add_argument("user")

    confirm = sub.add_parser("confirm", help="Confirmar o rechazar una anomalía.")
    confirm.add_argument("id")
    confirm.add_argument("user")
    confirm.add_argument("answer", choices=["yes", "no"])
    confirm.add_argument(
        "--professional",
        action="store_true",
        help="El profesional confirma en nombre del paciente.",
    )

    stats = sub.add_parser("stats", help="Adherencia semanal y rachas.")
    stats.add_argument("owner")

    for name, help_text in (
        ("chart", "Serie con media móvil y tendencia."),
        ("export", "Exportar la serie a Excel."),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("owner")
        cmd.add_argument("--days", type=int, choices=[30, 90], default=30)
        if name == "export":
            cmd.add_argument("--out", help="Ruta del XLSX de salida.")

    history = sub.add_parser("history", help="Historial, más reciente primero.")
    history.add_argument("owner")
    history.add_argument("--limit", type=int)
    history.add_argument("--before", help="Cursor: instante ISO 8601.")
    history.add_argument(
        "--view",
        choices=VIEWS,
        help="today, week (últimos 7 días) o range (requiere --from y --to).",
    )
    history.add_argument("--from", dest="from_day", help="Primer día (AAAA-MM-DD).")
    history.add_argument("--to", dest="to_day", help="Último día (AAAA-MM-DD).")

    config = sub.add_parser("config", help="Ver o cambiar umbrales.")
    config.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Campo de la política a modificar (repetible).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        Exit code (0 on success, 1 on a rejected operation).
    """
    ns = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if ns.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = SQLiteStore(Path(ns.db).expanduser().resolve())
    if ns.command == "config":
        return _run_config(store, ns.set)

    policy = store.load_policy()
    zone = get_zone(policy.timezone)
    service = MeasurementService(store, policy)
    now = datetime.now(zone)
    logger.debug("Running %s at %s", ns.command, now.isoformat())
    try:
        return _dispatch(ns, service, zone, now)
    except (MeasurementError, ValueError) as exc:
        print(f"Error: {exc}")
        return 1


def _dispatch(
    ns: argparse.Namespace,
    service: MeasurementService,
    zone: tzinfo,
    now: datetime,
) -> int:
    if ns.command == "add":
        measured_at = _parse_instant(ns.at, zone) if ns.at else now
        result = service.create_measurement(
            ns.owner,
            ns.weight,
            measured_at,
            MeasurementSource(ns.source),
            now,
            note=ns.note,
            created_by=ns.by,
        )
        print(f"OK: {_format_measurement(result.measurement, zone)}")
        for warning in result.warnings:
            print(f"Aviso: {warning.message}")
        return 0

    if ns.command == "edit":
        updated = service.update_measurement(
            ns.id, ns.user, MeasurementPatch(weight_kg=ns.weight, note=ns.note), now
        )
        print(f"OK: {_format_measurement(updated, zone)}")
        return 0

    if ns.command == "delete":
        service.delete_measurement(ns.id, ns.user, now)
        print(f"OK: {ns.id} borrado")
        return 0

    if ns.command == "confirm":
        confirmed = service.confirm_outlier(
            ns.id,
            ns.user,
            ns.answer == "yes",
            now=now,
            professional_override=ns.professional,
        )
        print(f"OK: {_format_measurement(confirmed, zone)}")
        return 0

    if ns.command == "stats":
        stats = service.get_compliance_statistics(ns.owner, now)
        last = (
            to_local(stats.last_measured_at, zone).strftime("%d/%m/%Y %H:%M")
            if stats.last_measured_at
            else "-"
        )
        print(f"Pesajes: {stats.total_entries}")
        print(f"Cumplimiento semanal: {stats.weekly_compliance_rate:.0%}")
        print(f"Racha actual: {stats.current_streak} semanas")
        print(f"Racha más larga: {stats.longest_streak} semanas")
        print(f"Último pesaje: {last}")
        print(f"Semana cumplida: {'sí' if stats.weekly_obligation_met else 'no'}")
        return 0

    if ns.command == "history":
        cursor = _parse_instant(ns.before, zone) if ns.before else None
        start_day = end_day = None
        if ns.view:
            start_day, end_day = view_range(
                ns.view, now, zone, _parse_day(ns.from_day), _parse_day(ns.to_day)
            )
        page = service.list_measurements(
            ns.owner,
            start_date=start_day,
            end_date=end_day,
            limit=ns.limit,
            cursor=cursor,
        )
        for measurement in page.entries:
            print(_format_measurement(measurement, zone))
        if page.next_cursor is not None:
            print(f"Más: --before {page.next_cursor.isoformat()}")
        return 0

    start, end = period_range(ns.days, now, zone)
    series = service.get_chart_series(ns.owner, start, end)
    if ns.command == "chart":
        for point in series.points:
            flag = " *" if point.is_outlier else ""
            print(
                f"{point.day.strftime('%d/%m/%Y')}  {point.weight_kg:6.1f}  "
                f"MA7 {point.moving_average:6.1f}{flag}"
            )
        stats = series.statistics
        print(f"Cambio: {stats.change:+.1f} kg ({stats.trend.value})")
        return 0

    out_path = (
        Path(ns.out).expanduser()
        if ns.out
        else Path.cwd() / "salidas" / f"peso_{ns.owner}_{now:%Y-%m-%d_%H-%M-%S}.xlsx"
    )
    write_chart_xlsx(series, out_path, ExcelLayout())
    print(f"OK: Output: {out_path}")
    return 0


def _run_config(store: SQLiteStore, assignments: list[str]) -> int:
    policy = store.load_policy()
    if assignments:
        known = set(vars(MeasurementPolicy()))
        changes: dict[str, object] = {}
        for item in assignments:
            key, sep, value = item.partition("=")
            if not sep or key not in known:
                print(f"Error: campo desconocido: {item}")
                return 1
            kind = type(getattr(policy, key))
            try:
                changes[key] = kind(value)
            except ValueError:
                print(f"Error: valor inválido para {key}: {value}")
                return 1
        policy = replace(policy, **changes)
        try:
            store.save_policy(policy)
        except ValueError as exc:
            print(f"Error: {exc}")
            return 1
    for key, value in vars(policy).items():
        print(f"{key} = {value}")
    return 0


def _parse_instant(text: str, zone: tzinfo) -> datetime:
    """Parse ISO 8601; naive values are read as local time."""
    dt = isoparse(text)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=zone)
    return dt


def _parse_day(text: str | None) -> date | None:
    return isoparse(text).date() if text else None


def _format_measurement(measurement: Measurement, zone: tzinfo) -> str:
    local = to_local(measurement.measured_at, zone).strftime("%d/%m/%Y %H:%M")
    flags = []
    if measurement.is_backfill:
        flags.append("backfill")
    if measurement.is_outlier:
        flags.append(f"anomalía:{measurement.outlier_confirmed.value}")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    note = f" - {measurement.note}" if measurement.note else ""
    return (
        f"{measurement.id} {local} {measurement.weight_kg:.1f} kg "
        f"({measurement.source.value}){suffix}{note}"
    )
