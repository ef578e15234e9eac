import datetime as dt
import textwrap
from pathlib import Path

import pytest

from time_schedule.parse_schedule import load_sheet, parse_sheet
from time_schedule.schedule_models import DEFAULT_LANE_COLOR, ScheduleValidationError

SAMPLE_SHEET = Path(__file__).resolve().parents[1] / "samples" / "festival_day.yaml"


def _write(tmp_path, body):
    path = tmp_path / "sheet.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return str(path)


def test_sample_sheet_loads():
    sheet = load_sheet(str(SAMPLE_SHEET))

    assert sheet.title == "Spring festival"
    assert sheet.settings.grid_minutes == 30
    assert [lane.id for lane in sheet.lanes] == ["stage", "booth"]
    assert sheet.sorted_dates == [dt.date(2024, 5, 1), dt.date(2024, 5, 2)]

    by_id = {entry.id: entry for entry in sheet.entries}
    assert by_id["song1"].parent_id == "act1"
    assert by_id["doors"].is_milestone
    assert by_id["teardown"].end_time == "00:30"
    assert by_id["a"].lane_id is None


def test_minimal_sheet_uses_defaults(tmp_path):
    path = _write(
        tmp_path,
        """
        entries:
          - {id: a, date: "2024-05-01", start_time: "9:05", end_time: "10:00"}
        """,
    )
    sheet = load_sheet(path)

    assert sheet.title == ""
    assert sheet.settings.start_hour == 7
    assert sheet.lanes == []
    assert sheet.entries[0].start_time == "09:05"
    assert sheet.entries[0].date == dt.date(2024, 5, 1)
    assert sheet.sorted_dates == [dt.date(2024, 5, 1)]


def test_lane_defaults_to_the_shared_color():
    sheet = parse_sheet({"lanes": [{"id": "x", "name": "X"}], "entries": []})
    assert sheet.lanes[0].color == DEFAULT_LANE_COLOR
    assert sheet.lanes[0].order == 0


def test_hidden_lanes_become_settings(tmp_path):
    path = _write(
        tmp_path,
        """
        settings: {grid_minutes: 15, hidden_lanes: [uncategorized]}
        entries: []
        """,
    )
    settings = load_sheet(path).settings
    assert settings.grid_minutes == 15
    assert settings.hidden_lane_ids == frozenset({"uncategorized"})


def test_unquoted_time_is_rejected(tmp_path):
    path = _write(
        tmp_path,
        """
        entries:
          - {id: a, date: 2024-05-01, start_time: 10:30, end_time: "11:00"}
        """,
    )
    with pytest.raises(ScheduleValidationError, match="quoted"):
        load_sheet(path)


@pytest.mark.parametrize(
    "data, message",
    [
        ({"title": "x"}, "missing required field 'entries'"),
        ({"entries": [], "colour": "red"}, "unexpected fields"),
        ({"settings": {"grid_minutes": 20}, "entries": []}, "grid_minutes"),
        ({"settings": {"start_hour": 49}, "entries": []}, "start_hour"),
        ({"settings": {"start_hour": 24}, "entries": []}, "start_hour: expected hour between 0 and 23"),
        ({"settings": {"end_hour": True}, "entries": []}, "expected integer"),
        (
            {"entries": [{"id": "a", "date": "2024-05-01", "start_time": "09:00", "end_time": "10:00", "lane": "nope"}]},
            "unknown lane 'nope'",
        ),
        (
            {
                "entries": [
                    {"id": "a", "date": "2024-05-01", "start_time": "09:00", "end_time": "10:00"},
                    {"id": "a", "date": "2024-05-01", "start_time": "11:00", "end_time": "12:00"},
                ]
            },
            "duplicate entry id 'a'",
        ),
        (
            {"lanes": [{"id": "x", "name": "X"}, {"id": "x", "name": "Y"}], "entries": []},
            "duplicate lane id 'x'",
        ),
        ({"entries": [{"id": "a", "date": "2024-05-01", "start_time": "25:00", "end_time": "10:00"}]}, "HH:MM"),
        ({"entries": [{"id": "a", "date": "2024-05-01", "start_time": "09:00"}]}, "end_time"),
    ],
)
def test_invalid_sheets_name_the_offending_path(data, message):
    with pytest.raises(ScheduleValidationError, match=message):
        parse_sheet(data)


def test_error_message_carries_the_yaml_path():
    data = {"entries": [{"id": "a", "date": "2024-05-01", "start_time": "09:00", "end_time": 630}]}
    with pytest.raises(ScheduleValidationError) as excinfo:
        parse_sheet(data)
    assert str(excinfo.value).startswith("entries[0].end_time")


def test_unknown_parent_is_left_for_layout():
    data = {"entries": [{"id": "a", "date": "2024-05-01", "start_time": "09:00", "end_time": "10:00", "parent": "ghost"}]}
    assert parse_sheet(data).entries[0].parent_id == "ghost"


def test_non_mapping_top_level_is_rejected():
    with pytest.raises(ScheduleValidationError, match="root"):
        parse_sheet(["entries"])


def test_end_hour_may_run_into_the_next_day():
    sheet = parse_sheet({"settings": {"start_hour": 23, "end_hour": 48}, "entries": []})
    assert (sheet.settings.start_hour, sheet.settings.end_hour) == (23, 48)
