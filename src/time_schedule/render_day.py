from __future__ import annotations

from importlib import metadata
from pathlib import Path

import matplotlib

matplotlib.use("Agg")  # ensure headless, deterministic output
import matplotlib.pyplot as plt
from matplotlib.patches import Rectangle

from .day_view import DayLayout
from .schedule_models import DEFAULT_LANE_COLOR, EntryLayout
from .timegrid import format_duration

# Figure tuning knobs.
PIXELS_PER_INCH = 72.0
LANE_WIDTH_INCH = 2.6
AXIS_WIDTH_INCH = 0.8
FONT_SCALE = 1.0
TITLE_FONT = 14 * FONT_SCALE
LABEL_FONT = 8 * FONT_SCALE
HEADER_FONT = 10 * FONT_SCALE
FOOTER_FONT = 7 * FONT_SCALE
ENTRY_ALPHA = 0.35
NESTED_ALPHA = 0.15
LABEL_MIN_HEIGHT_PX = 14.0


def render_day(day: DayLayout, out_path: str, title: str = "") -> None:
    """
    Render a static SVG of one date's timeline to `out_path`.

    - Expects a computed DayLayout; nothing is re-laid out here.
    - Lanes are unit-wide columns on x; y is in layout pixels, top down.
    - Milestones are drawn as labelled marker lines at their instant.
    """

    if not day.lanes:
        raise ValueError("day layout has no visible lanes")

    grid = day.grid
    total_height = grid.total_height
    lane_count = len(day.lanes)

    fig_width = AXIS_WIDTH_INCH + LANE_WIDTH_INCH * lane_count
    fig_height = max(3.0, total_height / PIXELS_PER_INCH + 1.0)
    fig, ax = plt.subplots(figsize=(fig_width, fig_height))

    ax.set_xlim(0, lane_count)
    ax.set_ylim(0, max(total_height, 1.0))
    ax.invert_yaxis()
    ax.xaxis.tick_top()
    ax.set_xticks([index + 0.5 for index in range(lane_count)])
    ax.set_xticklabels([lane.name for lane in day.lanes], fontsize=HEADER_FONT)
    for tick, lane in zip(ax.get_xticklabels(), day.lanes):
        tick.set_color(lane.color)

    labels = grid.hour_labels()
    ax.set_yticks([top for top, _ in labels])
    ax.set_yticklabels([text for _, text in labels], fontsize=LABEL_FONT)

    for top, is_major in grid.grid_lines():
        ax.axhline(
            top,
            color="#cbd5e1" if is_major else "#e2e8f0",
            linestyle="-" if is_major else "--",
            linewidth=0.8 if is_major else 0.5,
            zorder=0,
        )
    for index in range(1, lane_count):
        ax.axvline(index, color="#cbd5e1", linewidth=0.8, zorder=0)

    for lane_index, lane in enumerate(day.lanes):
        for layout in day.lane_entries(lane.id):
            if layout.entry.is_milestone:
                _draw_milestone(ax, layout, lane_index)
            else:
                _draw_entry(ax, layout, lane_index, grid.start_hour)

    date_label = day.date.isoformat()
    fig.suptitle(f"{title} {date_label}".strip(), fontsize=TITLE_FONT)
    footer = f"time-schedule v{_tool_version()}"
    fig.text(0.99, 0.01, footer, ha="right", va="bottom", fontsize=FOOTER_FONT, alpha=0.8)

    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, format="svg", bbox_inches="tight")
    plt.close(fig)


def _draw_entry(ax: plt.Axes, layout: EntryLayout, lane_index: int, window_start_hour: int) -> None:
    color = layout.entry.color or DEFAULT_LANE_COLOR
    x = lane_index + layout.left / 100
    band_width = layout.width / 100
    content_width = layout.content_width / 100

    if layout.content_width_percent < 100:
        # Faint backdrop across the band reserved for descendants.
        ax.add_patch(
            Rectangle((x, layout.top), band_width, layout.height, facecolor=color, alpha=NESTED_ALPHA, linewidth=0)
        )
    ax.add_patch(
        Rectangle(
            (x, layout.top),
            content_width,
            layout.height,
            facecolor=color,
            edgecolor=color,
            alpha=ENTRY_ALPHA,
            linewidth=0.8,
        )
    )
    if layout.height >= LABEL_MIN_HEIGHT_PX:
        entry = layout.entry
        duration = format_duration(entry.start_time, entry.end_time, window_start_hour)
        text = f"{entry.title}\n{entry.start_time}-{entry.end_time}"
        if duration:
            text += f" ({duration})"
        ax.text(
            x + 0.02,
            layout.top + 2,
            text,
            ha="left",
            va="top",
            fontsize=LABEL_FONT,
            clip_on=True,
        )


def _draw_milestone(ax: plt.Axes, layout: EntryLayout, lane_index: int) -> None:
    color = layout.entry.color or DEFAULT_LANE_COLOR
    x = lane_index + layout.left / 100
    width = layout.content_width / 100
    ax.plot([x, x + width], [layout.top, layout.top], color=color, linewidth=1.6, zorder=3)
    ax.text(
        x + 0.02,
        layout.top,
        f"{layout.entry.start_time} {layout.entry.title}",
        ha="left",
        va="center",
        fontsize=LABEL_FONT,
        bbox={"facecolor": "white", "alpha": 0.9, "edgecolor": "none", "pad": 1.0},
        zorder=4,
    )


def _tool_version() -> str:
    try:
        return metadata.version("time-schedule")
    except Exception:
        return "0.0.0"
