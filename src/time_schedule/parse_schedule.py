from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass
from typing import Any

import yaml

from .schedule_models import DEFAULT_LANE_COLOR, Entry, Lane, ScheduleSheet, ScheduleValidationError, WindowSettings
from .timegrid import GRID_ROW_HEIGHTS, parse_time

MAX_START_HOUR = 23
MAX_END_HOUR = 48


@dataclass(frozen=True)
class _Path:
    """Helper to produce readable YAML path strings like entries[0].start_time."""

    parts: tuple[str, ...] = ()

    def child(self, segment: str) -> "_Path":
        return _Path(self.parts + (segment,))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return ".".join(self.parts) if self.parts else "root"


def load_sheet(path: str) -> ScheduleSheet:
    """Load a ScheduleSheet from a YAML file at the given path."""

    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    return parse_sheet(raw)


def parse_sheet(data: Any) -> ScheduleSheet:
    path = _Path()
    if not isinstance(data, dict):
        raise ScheduleValidationError(f"{path}: expected mapping at top level")
    _assert_allowed_keys(data, {"title", "settings", "lanes", "entries", "dates"}, path)

    title = data.get("title") or ""
    if not isinstance(title, str):
        raise ScheduleValidationError(f"{path.child('title')}: expected string")

    settings = _parse_settings(data.get("settings"), path.child("settings"))

    lanes_raw = _optional_list(data, "lanes", path)
    lane_ids: set[str] = set()
    lanes = [_parse_lane(raw, path.child(f"lanes[{idx}]"), lane_ids) for idx, raw in enumerate(lanes_raw)]

    entries_raw = data.get("entries")
    if entries_raw is None:
        raise ScheduleValidationError(f"{path}: missing required field 'entries'")
    if not isinstance(entries_raw, list):
        raise ScheduleValidationError(f"{path.child('entries')}: expected list")
    entry_ids: set[str] = set()
    entries = [
        _parse_entry(raw, path.child(f"entries[{idx}]"), entry_ids, lane_ids)
        for idx, raw in enumerate(entries_raw)
    ]

    dates_raw = _optional_list(data, "dates", path)
    dates = [_parse_date(raw, path.child(f"dates[{idx}]")) for idx, raw in enumerate(dates_raw)]

    return ScheduleSheet(title=title, settings=settings, lanes=lanes, entries=entries, dates=dates)


def _parse_settings(data: Any, path: _Path) -> WindowSettings:
    if data is None:
        return WindowSettings()
    if not isinstance(data, dict):
        raise ScheduleValidationError(f"{path}: expected mapping")
    _assert_allowed_keys(data, {"start_hour", "end_hour", "grid_minutes", "hidden_lanes"}, path)

    defaults = WindowSettings()
    start_hour = _optional_int(data, "start_hour", defaults.start_hour, path)
    end_hour = _optional_int(data, "end_hour", defaults.end_hour, path)
    for key, value, limit in (("start_hour", start_hour, MAX_START_HOUR), ("end_hour", end_hour, MAX_END_HOUR)):
        if not 0 <= value <= limit:
            raise ScheduleValidationError(f"{path.child(key)}: expected hour between 0 and {limit}")

    grid_minutes = _optional_int(data, "grid_minutes", defaults.grid_minutes, path)
    if grid_minutes not in GRID_ROW_HEIGHTS:
        raise ScheduleValidationError(
            f"{path.child('grid_minutes')}: expected one of {sorted(GRID_ROW_HEIGHTS)}"
        )

    hidden_raw = data.get("hidden_lanes") or []
    if not isinstance(hidden_raw, list) or not all(isinstance(item, str) for item in hidden_raw):
        raise ScheduleValidationError(f"{path.child('hidden_lanes')}: expected list of lane ids")

    return WindowSettings(
        start_hour=start_hour,
        end_hour=end_hour,
        grid_minutes=grid_minutes,
        hidden_lane_ids=frozenset(hidden_raw),
    )


def _parse_lane(data: Any, path: _Path, ids: set[str]) -> Lane:
    if not isinstance(data, dict):
        raise ScheduleValidationError(f"{path}: expected mapping for lane")
    _assert_allowed_keys(data, {"id", "name", "order", "color"}, path)
    lane_id = _require_str(data, "id", path)
    _register_id(lane_id, path.child("id"), ids, "lane")
    name = _require_str(data, "name", path)
    order = _optional_int(data, "order", len(ids) - 1, path)
    color = _optional_str(data, "color", path)
    return Lane(id=lane_id, name=name, order=order, color=color or DEFAULT_LANE_COLOR)


def _parse_entry(data: Any, path: _Path, ids: set[str], lane_ids: set[str]) -> Entry:
    if not isinstance(data, dict):
        raise ScheduleValidationError(f"{path}: expected mapping for entry")
    _assert_allowed_keys(
        data,
        {
            "id",
            "date",
            "start_time",
            "end_time",
            "title",
            "lane",
            "parent",
            "depth",
            "color",
            "location",
            "description",
            "meta",
        },
        path,
    )
    entry_id = _require_str(data, "id", path)
    _register_id(entry_id, path.child("id"), ids, "entry")

    date = _parse_date(_require_value(data, "date", path), path.child("date"))
    start_time = _parse_time(_require_value(data, "start_time", path), path.child("start_time"))
    end_time = _parse_time(_require_value(data, "end_time", path), path.child("end_time"))

    lane_id = _optional_str(data, "lane", path)
    if lane_id is not None and lane_id not in lane_ids:
        raise ScheduleValidationError(f"{path.child('lane')}: unknown lane '{lane_id}'")

    depth = _optional_int(data, "depth", 0, path)
    if depth < 0:
        raise ScheduleValidationError(f"{path.child('depth')}: expected non-negative integer")

    meta = data.get("meta")
    if meta is not None and not isinstance(meta, dict):
        raise ScheduleValidationError(f"{path.child('meta')}: expected mapping for meta")

    # Parent references are checked by the allocator, which can fall back to
    # flat rendering for a single broken subtree.
    return Entry(
        id=entry_id,
        date=date,
        start_time=start_time,
        end_time=end_time,
        lane_id=lane_id,
        parent_id=_optional_str(data, "parent", path),
        depth=depth,
        title=_optional_str(data, "title", path) or "",
        color=_optional_str(data, "color", path) or "",
        location=_optional_str(data, "location", path) or "",
        description=_optional_str(data, "description", path) or "",
        meta=meta,
    )


def _assert_allowed_keys(data: dict[str, Any], allowed: set[str], path: _Path) -> None:
    extras = sorted(set(data.keys()) - allowed)
    if extras:
        raise ScheduleValidationError(f"{path}: unexpected fields {extras}")


def _require_str(data: dict[str, Any], key: str, path: _Path) -> str:
    value = _require_value(data, key, path)
    if not isinstance(value, str) or not value.strip():
        raise ScheduleValidationError(f"{path.child(key)}: expected non-empty string")
    return value


def _require_value(data: dict[str, Any], key: str, path: _Path) -> Any:
    if key not in data:
        raise ScheduleValidationError(f"{path}: missing required field '{key}'")
    return data[key]


def _optional_str(data: dict[str, Any], key: str, path: _Path) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ScheduleValidationError(f"{path.child(key)}: expected string")
    return value


def _optional_int(data: dict[str, Any], key: str, default: int, path: _Path) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ScheduleValidationError(f"{path.child(key)}: expected integer")
    return value


def _optional_list(data: dict[str, Any], key: str, path: _Path) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ScheduleValidationError(f"{path.child(key)}: expected list")
    return value


def _parse_date(value: Any, path: _Path) -> _dt.date:
    # yaml.safe_load already turns unquoted ISO dates into date objects.
    if isinstance(value, _dt.date) and not isinstance(value, _dt.datetime):
        return value
    if not isinstance(value, str):
        raise ScheduleValidationError(f"{path}: expected YYYY-MM-DD string")
    try:
        parsed = _dt.date.fromisoformat(value)
    except ValueError as exc:  # pragma: no cover - format guard
        raise ScheduleValidationError(f"{path}: expected YYYY-MM-DD string") from exc
    return parsed


def _parse_time(value: Any, path: _Path) -> str:
    if not isinstance(value, str):
        # YAML 1.1 reads unquoted 10:30 as the base-60 integer 630.
        raise ScheduleValidationError(f"{path}: expected quoted HH:MM string")
    try:
        hour, minute = parse_time(value)
    except ValueError as exc:
        raise ScheduleValidationError(f"{path}: expected HH:MM string") from exc
    return f"{hour:02d}:{minute:02d}"


def _register_id(value: str, path: _Path, ids: set[str], kind: str) -> None:
    if value in ids:
        raise ScheduleValidationError(f"{path}: duplicate {kind} id '{value}'")
    ids.add(value)
