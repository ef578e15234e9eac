from __future__ import annotations

import argparse
import datetime as dt
import logging
import sys
import webbrowser
from pathlib import Path

import yaml

from .allocation import StructuralError
from .day_view import layout_day
from .parse_schedule import load_sheet
from .render_day import render_day
from .schedule_models import ScheduleSheet, ScheduleValidationError

logger = logging.getLogger("time_schedule")


def _parse_date(value: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render one day of a time-schedule sheet",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("sheet", help="Path to schedule sheet YAML")
    parser.add_argument("--date", type=_parse_date, help="Date to render (YYYY-MM-DD); defaults to the sheet's first date")
    parser.add_argument("--out", default="output/time_schedule.svg", help="Output SVG path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log layout and gesture details")
    parser.add_argument(
        "--view",
        dest="view",
        action="store_true",
        default=True,
        help="Best-effort open the output file after rendering",
    )
    parser.add_argument(
        "--no-view",
        dest="view",
        action="store_false",
        help="Do not open the output file after rendering",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    sheet_path = Path(args.sheet)

    try:
        sheet: ScheduleSheet = load_sheet(str(sheet_path))
    except (yaml.YAMLError, ScheduleValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except FileNotFoundError:
        print(f"Error: sheet file not found: {sheet_path}", file=sys.stderr)
        return 1
    except Exception as exc:  # Unexpected
        print(f"Unexpected error while loading sheet: {exc}", file=sys.stderr)
        return 1

    date = args.date
    if date is None:
        dates = sheet.sorted_dates
        if not dates:
            print("Error: sheet has no dates to render; pass --date", file=sys.stderr)
            return 2
        date = dates[0]

    try:
        day = layout_day(sheet.entries, sheet.lanes, sheet.settings, date)
    except (ScheduleValidationError, StructuralError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except Exception as exc:
        print(f"Unexpected error while laying out {date}: {exc}", file=sys.stderr)
        return 1

    logger.debug("laid out %d lanes for %s", len(day.lanes), date)

    try:
        render_day(day, out_path=args.out, title=sheet.title)
    except Exception as exc:
        print(f"Unexpected error while rendering: {exc}", file=sys.stderr)
        return 1

    if args.view:
        try:
            webbrowser.open(Path(args.out).resolve().as_uri())
        except Exception:
            pass

    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
