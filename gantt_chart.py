"""
Gantt Chart Tool
Reads a project schedule from JSON or Excel, lays the tasks and milestones out
on a month grid that steps over weekends, and writes the chart as SVG or PNG.

Features:
  - Tasks and milestones; start dates and resources carry over from the previous item
  - Weekend-aware task spans (a bar never ends on a Saturday or Sunday)
  - Month columns sized by the number of days in each month
  - Randomly seeded, well separated resource colours with open/closed task styles
  - Optional marked-date line and resource legend
  - Excel template with dropdowns for quick editing
"""

import argparse
import math
import os
import random
import sys
from calendar import monthrange
from collections import namedtuple
from datetime import date, datetime, timedelta, timezone
from functools import partial

import json5
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from matplotlib.patches import FancyBboxPatch, Polygon
import numpy as np
import pandas as pd
import svgwrite
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.worksheet.datavalidation import DataValidation


# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_TITLE_WIDTH = 210.0
DEFAULT_MAX_MONTH_WIDTH = 80.0

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# Hue step for resource colours, see
# https://martin.ankerl.com/2009/12/09/how-to-create-random-colors-programmatically/
GOLDEN_RATIO_CONJUGATE = 0.618033988749895
RESOURCE_SATURATION = 0.5
RESOURCE_VALUE = 0.5

MS_PER_DAY = 86_400_000

EXCEL_EXTENSIONS = (".xlsx", ".xlsm")

STYLE = {
    "gutter": (10.0, 80.0, 10.0, 10.0),           # left, top, right, bottom
    "row_gutter": (5.0, 5.0, 5.0, 5.0),
    "row_body_height": 20.0,
    "resource_gutter": (10.0, 10.0, 10.0, 10.0),
    "resource_body_height": 20.0,
    "rect_corner_radius": 3.0,
    "title_y": 25.0,
    "marker_overhang": 5.0,
    "legend_cell_width": 100.0,
    "legend_label_gap": 5.0,
    "background": "white",
    "font_fallback": "DejaVu Sans",
    "dpi": 144,
}

# Class name -> CSS declarations. Order is the order of the emitted stylesheet.
BASE_STYLES = {
    "outer-lines": {"stroke-width": 3, "stroke": "#aaaaaa"},
    "inner-lines": {"stroke-width": 2, "stroke": "#dddddd"},
    "item": {"font-family": "Arial", "font-size": "12pt", "dominant-baseline": "middle"},
    "resource": {"font-family": "Arial", "font-size": "12pt", "text-anchor": "end",
                 "dominant-baseline": "middle"},
    "title": {"font-family": "Arial", "font-size": "18pt"},
    "heading": {"font-family": "Arial", "font-size": "16pt", "dominant-baseline": "middle",
                "text-anchor": "middle"},
    "task-heading": {"dominant-baseline": "middle", "text-anchor": "start"},
    "milestone": {"fill": "black", "stroke-width": 1, "stroke": "black"},
    "marker": {"stroke-width": 2, "stroke": "#888888", "stroke-dasharray": 7},
}


# ── Geometry & Scene Types ───────────────────────────────────────────────────

class Gutter(namedtuple("Gutter", "left top right bottom")):
    """Margins on each side of a layout region."""
    __slots__ = ()

    def width(self):
        return self.left + self.right

    def height(self):
        return self.top + self.bottom


class Row(namedtuple("Row", "title resource_index offset length open")):
    """One chart row. A row without a length is a milestone."""
    __slots__ = ()

    @property
    def is_milestone(self):
        return self.length is None


Column = namedtuple("Column", "width month_name days")

# fill/stroke are CSS colours, open marks the outline-only variant
ResourceStyle = namedtuple("ResourceStyle", "class_name fill stroke stroke_width open")

Layout = namedtuple("Layout", [
    "title", "gutter", "row_gutter", "row_height",
    "resource_gutter", "resource_height", "rect_corner_radius",
    "title_width", "max_month_width",
    "start_date", "end_date", "total_days", "total_width",
    "columns", "rows", "shadow_durations", "marked_date_offset",
    "resources", "resource_styles",
])

# Drawing primitives
Line = namedtuple("Line", "x1 y1 x2 y2 class_name")
Rect = namedtuple("Rect", "x y width height radius class_name")
Path = namedtuple("Path", "commands class_name")
Text = namedtuple("Text", "text x y class_name")
Group = namedtuple("Group", "name children")
Scene = namedtuple("Scene", "width height styles children")

SpanState = namedtuple("SpanState", "cursor start_date end_date")
RowState = namedtuple("RowState", "cursor resource_index")


class ChartError(ValueError):
    """The schedule cannot be charted. Raised before any geometry is produced."""


class ConsoleLog:
    """Console sink for progress, warnings and errors."""

    def __init__(self, stream=None):
        self.stream = stream

    def output(self, message):
        print(message, file=self.stream)

    def warning(self, message):
        print(f"  WARNING: {message}", file=self.stream)

    def error(self, message):
        print(f"  ERROR: {message}", file=self.stream)


# ── Calendar Helpers ─────────────────────────────────────────────────────────

def days_in_month(year, month):
    return monthrange(year, month)[1]


def weekend_shift(instant):
    """Shift that moves a Saturday or Sunday onto the following Monday."""
    weekday = instant.weekday()
    if weekday == 5:
        return timedelta(days=2)
    if weekday == 6:
        return timedelta(days=1)
    return timedelta(0)


def shadow_duration(cursor, duration):
    """Task length in days, extended so the task does not end on a weekend."""
    return duration + weekend_shift(cursor + timedelta(days=duration)).days


def month_start(d):
    return datetime(d.year, d.month, 1)


def month_end(d):
    return datetime(d.year, d.month, days_in_month(d.year, d.month))


def next_month(d):
    """First day of the month after d."""
    return datetime(d.year + (1 if d.month == 12 else 0), d.month % 12 + 1, 1)


def whole_days(delta):
    """Whole days in a timedelta, truncated towards zero."""
    return int(delta.total_seconds() / 86400)


# ── Value Parsing ────────────────────────────────────────────────────────────

def norm_date(d):
    """Normalise to midnight datetime."""
    if isinstance(d, pd.Timestamp):
        d = d.to_pydatetime()
    if not isinstance(d, (datetime, date)):
        raise TypeError(f"norm_date expected datetime, got {type(d).__name__}: {d!r}")
    return datetime(d.year, d.month, d.day)


def clean_str(val):
    """Return stripped string or empty string for NaN/None."""
    if val is None or (isinstance(val, float) and math.isnan(val)) or val is pd.NaT:
        return ""
    return str(val).strip()


def is_blank(val):
    """True for None, NaN, NaT and whitespace-only strings."""
    if isinstance(val, str):
        return not val.strip()
    if isinstance(val, (list, dict)):
        return False
    return val is None or bool(pd.isna(val))


def _naive_utc(dt):
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_datetime(val, context=""):
    """Parse a date or date-time. Handles datetime, date, Timestamp, and string.
    The time of day is kept; aware values are converted to naive UTC."""
    ctx = f" ({context})" if context else ""
    if is_blank(val):
        raise ValueError(f"Date is blank{ctx}")
    if isinstance(val, pd.Timestamp):
        return _naive_utc(val.to_pydatetime())
    if isinstance(val, datetime):
        return _naive_utc(val)
    if isinstance(val, date):
        return datetime(val.year, val.month, val.day)
    if isinstance(val, str):
        val = val.strip()
        text = val[:-1] if val.endswith("Z") else val
        try:
            return _naive_utc(datetime.fromisoformat(text))
        except ValueError:
            pass
        for fmt in ("%Y-%m-%dT%H:%M:%S", "%d/%m/%Y", "%d-%m-%Y"):
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                pass
        raise ValueError(f"Cannot parse date{ctx}: {val!r}. Expected YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS")
    raise ValueError(f"Cannot parse date{ctx}: {val!r}")


def datetime_from_ms(ms):
    """Unix epoch milliseconds to a naive UTC datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).replace(tzinfo=None)


def parse_int(val, context=""):
    """Parse a whole number from JSON or an Excel cell (5, 5.0 and "5" are all 5)."""
    ctx = f" ({context})" if context else ""
    if isinstance(val, (bool, np.bool_)):
        raise ValueError(f"Expected a whole number{ctx}, got {val!r}")
    if isinstance(val, (int, np.integer)):
        return int(val)
    if isinstance(val, (float, np.floating)) and float(val).is_integer():
        return int(val)
    if isinstance(val, str):
        try:
            return int(val.strip())
        except ValueError:
            pass
    raise ValueError(f"Expected a whole number{ctx}, got {val!r}")


def parse_bool(val, context=""):
    """Parse a flag. Blank cells are False."""
    if is_blank(val):
        return False
    if isinstance(val, (bool, np.bool_)):
        return bool(val)
    if isinstance(val, (int, float, np.integer, np.floating)):
        return bool(val)
    if isinstance(val, str):
        text = val.strip().lower()
        if text in ("true", "yes", "y", "1"):
            return True
        if text in ("false", "no", "n", "0"):
            return False
    ctx = f" ({context})" if context else ""
    raise ValueError(f"Expected true/false{ctx}, got {val!r}")


# ── Template Generation ─────────────────────────────────────────────────────

TEMPLATE_RESOURCES = ["Design", "Engineering", "QA"]

TEMPLATE_ITEMS = [
    # Title, Duration, Resource, Start Date, Open
    ["Discovery", 10, "Design", "2026-01-05", False],
    ["Visual design", 15, None, None, False],
    ["Design sign-off", None, None, None, None],
    ["Build", 30, "Engineering", None, True],
    ["Test", 10, "QA", None, True],
    ["Launch", None, None, None, None],
]


def generate_template(output_path, log=None):
    """Create an Excel template with 3 sheets (Chart, Resources, Items),
    example data and dropdowns."""
    log = log or ConsoleLog()
    wb = Workbook()

    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color="2E3B4E", end_color="2E3B4E", fill_type="solid")
    header_alignment = Alignment(horizontal="center", vertical="center")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def style_header(ws, row=1):
        for cell in ws[row]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = header_alignment
            cell.border = thin_border

    def style_data_rows(ws, start_row=2):
        for row in ws.iter_rows(min_row=start_row, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
                cell.alignment = Alignment(vertical="center")

    # ── Sheet 1: Chart ──
    ws_chart = wb.active
    ws_chart.title = "Chart"
    ws_chart.append(["Title", "Marked Date"])
    ws_chart.append(["Website Relaunch", "2026-02-16"])
    ws_chart.column_dimensions["A"].width = 40
    ws_chart.column_dimensions["B"].width = 16
    style_header(ws_chart)
    style_data_rows(ws_chart)
    ws_chart.freeze_panes = "A2"

    # ── Sheet 2: Resources ──
    ws_resources = wb.create_sheet("Resources")
    ws_resources.append(["Resource"])
    for name in TEMPLATE_RESOURCES:
        ws_resources.append([name])
    ws_resources.column_dimensions["A"].width = 30
    style_header(ws_resources)
    style_data_rows(ws_resources)
    ws_resources.freeze_panes = "A2"

    # ── Sheet 3: Items ──
    ws_items = wb.create_sheet("Items")
    ws_items.append(["Title", "Duration", "Resource", "Start Date", "Open"])
    for row in TEMPLATE_ITEMS:
        ws_items.append(row)
    for col, width in zip("ABCDE", (36, 12, 20, 16, 10)):
        ws_items.column_dimensions[col].width = width
    style_header(ws_items)
    style_data_rows(ws_items)
    ws_items.freeze_panes = "A2"

    # Resource dropdown reads from the Resources sheet
    dv_resource = DataValidation(type="list", formula1="=Resources!$A$2:$A$50", allow_blank=True)
    dv_resource.error = "Pick a resource from the Resources sheet"
    dv_resource.errorTitle = "Unknown Resource"
    ws_items.add_data_validation(dv_resource)
    dv_resource.add("C2:C500")

    dv_open = DataValidation(type="list", formula1='"TRUE,FALSE"', allow_blank=True)
    dv_open.error = "Please select TRUE or FALSE"
    dv_open.errorTitle = "Invalid Open Flag"
    ws_items.add_data_validation(dv_open)
    dv_open.add("E2:E500")

    wb.save(output_path)
    log.output(f"Template created: {output_path}")
    log.output("  - Sheet 'Chart': chart title and optional marked date")
    log.output("  - Sheet 'Resources': one resource per row, in legend order")
    log.output("  - Sheet 'Items': tasks (with Duration) and milestones (no Duration)")
    log.output("  - The first item needs a Start Date and a Resource; later items inherit them")
    log.output(f"\nEdit the file, then run again with it as input to generate the chart.")


# ── Data Loading ─────────────────────────────────────────────────────────────

def _parse_json_item(raw, index):
    """Convert one JSON item into the internal item dict."""
    number = index + 1
    if not isinstance(raw, dict):
        raise ValueError(f"Item {number} must be an object, got {type(raw).__name__}")
    if "title" not in raw:
        raise ValueError(f"Item {number} has no 'title'")
    context = f"item {number}"

    duration = None
    if raw.get("duration") is not None:
        duration = parse_int(raw["duration"], context=f"{context}, 'duration'")
    elif raw.get("durationMs") is not None:
        duration = parse_int(raw["durationMs"], context=f"{context}, 'durationMs'") // MS_PER_DAY

    start_date = None
    if raw.get("startDate") is not None:
        start_date = parse_datetime(raw["startDate"], context=f"{context}, 'startDate'")
    elif raw.get("startMs") is not None:
        start_date = datetime_from_ms(parse_int(raw["startMs"], context=f"{context}, 'startMs'"))

    resource = None
    if raw.get("resource") is not None:
        resource = parse_int(raw["resource"], context=f"{context}, 'resource'")

    return {
        "title": clean_str(raw["title"]),
        "duration": duration,
        "start_date": start_date,
        "resource": resource,
        "open": parse_bool(raw.get("open"), context=f"{context}, 'open'"),
        "_row": number,
    }


def chart_from_dict(data):
    """Build the chart dict from a decoded JSON document."""
    if not isinstance(data, dict):
        raise ValueError("Chart document must be a JSON object")
    if "title" not in data:
        raise ValueError("Chart document has no 'title'")
    items = data.get("items")
    if not isinstance(items, list):
        raise ValueError("Chart document needs an 'items' list")
    resources = data.get("resources", [])
    if not isinstance(resources, list):
        raise ValueError("'resources' must be a list of names")

    marked_date = None
    if data.get("markedDate") is not None:
        marked_date = norm_date(parse_datetime(data["markedDate"], context="'markedDate'"))

    return {
        "title": clean_str(data["title"]),
        "marked_date": marked_date,
        "resources": [clean_str(r) for r in resources],
        "items": [_parse_json_item(raw, i) for i, raw in enumerate(items)],
    }


def load_chart_json(source):
    """Load a chart from a JSON file path or an open text stream.
    JSON5 is accepted, so comments, unquoted keys and trailing commas are fine."""
    if hasattr(source, "read"):
        data = json5.load(source)
    else:
        with open(source, encoding="utf-8") as fh:
            data = json5.load(fh)
    return chart_from_dict(data)


def _read_sheet(filepath, sheet_name, required):
    try:
        df = pd.read_excel(filepath, sheet_name=sheet_name)
    except ValueError as e:
        raise ValueError(f"Could not read '{sheet_name}' sheet: {e}") from e
    df.columns = df.columns.astype(str).str.strip()
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"'{sheet_name}' sheet is missing column(s): {', '.join(sorted(missing))}. "
                         f"Found: {', '.join(df.columns)}")
    return df


def _resource_index(val, resources, context):
    """Resource cell to an index: a resource name or a 0-based number."""
    if isinstance(val, str) and not val.strip().lstrip("-").isdigit():
        name = val.strip()
        if name not in resources:
            raise ValueError(f"Unknown resource '{name}' ({context}). "
                             f"Resources: {', '.join(resources)}")
        return resources.index(name)
    return parse_int(val, context=context)


def load_chart_excel(filepath, log=None):
    """Load a chart from the 'Chart', 'Resources' and 'Items' sheets of a workbook."""
    log = log or ConsoleLog()

    df_chart = _read_sheet(filepath, "Chart", {"Title"})
    if df_chart.empty:
        raise ValueError("'Chart' sheet has no data row. Add the chart title in row 2.")
    chart_row = df_chart.iloc[0]
    marked_date = None
    if "Marked Date" in df_chart.columns and not is_blank(chart_row["Marked Date"]):
        marked_date = norm_date(parse_datetime(chart_row["Marked Date"], context="Chart, 'Marked Date'"))

    df_resources = _read_sheet(filepath, "Resources", {"Resource"})
    resources = [clean_str(v) for v in df_resources["Resource"] if clean_str(v)]

    df_items = _read_sheet(filepath, "Items", {"Title", "Duration", "Resource", "Start Date"})
    items = []
    for idx, row in df_items.iterrows():
        row_num = idx + 2
        title = clean_str(row["Title"])
        if not title:
            continue  # skip blank rows
        try:
            duration = None
            if not is_blank(row["Duration"]):
                duration = parse_int(row["Duration"], context=f"Items row {row_num}, 'Duration'")

            start_date = None
            if not is_blank(row["Start Date"]):
                start_date = parse_datetime(row["Start Date"], context=f"Items row {row_num}, 'Start Date'")

            resource = None
            if not is_blank(row["Resource"]):
                resource = _resource_index(row["Resource"], resources,
                                           context=f"Items row {row_num}, 'Resource'")

            is_open = False
            if "Open" in df_items.columns:
                is_open = parse_bool(row["Open"], context=f"Items row {row_num}, 'Open'")

            items.append({
                "title": title,
                "duration": duration,
                "start_date": start_date,
                "resource": resource,
                "open": is_open,
                "_row": row_num,
            })
        except ValueError as e:
            log.warning(f"Could not parse row {row_num}: {e}")

    return {
        "title": clean_str(chart_row["Title"]),
        "marked_date": marked_date,
        "resources": resources,
        "items": items,
    }


def load_chart(path=None, log=None):
    """Load a chart from an Excel workbook, a JSON file, or JSON on stdin."""
    if path is None:
        return load_chart_json(sys.stdin)
    if os.path.splitext(path)[1].lower() in EXCEL_EXTENSIONS:
        return load_chart_excel(path, log=log)
    return load_chart_json(path)


# ── Data Validation ──────────────────────────────────────────────────────────

def _item_label(item, index):
    return f"Item {item.get('_row', index + 1)} ('{item['title']}')"


def validate_chart(chart):
    """Validate a loaded chart. Returns (errors, warnings) lists.
    Errors are listed in the order the schedule scan meets them."""
    errors = []
    warnings = []
    items = chart["items"]
    resources = chart["resources"]

    if len(items) < 2:
        errors.append(f"You must provide more than one item (got {len(items)}).")
        return errors, warnings

    referenced = set()
    for i, item in enumerate(items):
        label = _item_label(item, i)
        if i == 0 and item.get("start_date") is None:
            errors.append(f"{label}: the first item must contain a start date.")

        resource = item.get("resource")
        if resource is None:
            if i == 0:
                errors.append(f"{label}: the first item must contain a resource index.")
        elif not 0 <= resource < len(resources):
            errors.append(f"{label}: resource index {resource} is out of range "
                          f"({len(resources)} resource(s) defined).")
        else:
            referenced.add(resource)

        if item.get("duration") is not None and item["duration"] < 0:
            warnings.append(f"{label}: duration {item['duration']} is negative.")

    if errors:
        return errors, warnings

    state = SpanState(None, None, None)
    for i, item in enumerate(items):
        start = item.get("start_date")
        if state.cursor is not None and start is not None and start < state.cursor:
            warnings.append(f"{_item_label(item, i)}: starts {start:%Y-%m-%d}, before the previous "
                            f"item ends ({state.cursor:%Y-%m-%d}).")
        state, _ = _span_step(state, item)

    marked = chart.get("marked_date")
    if marked is not None:
        first = month_start(state.start_date)
        last = month_end(max(state.end_date, state.start_date))
        if not first <= marked <= last:
            warnings.append(f"Marked date {marked:%Y-%m-%d} is outside the chart "
                            f"({first:%Y-%m-%d} to {last:%Y-%m-%d}).")

    for i, name in enumerate(resources):
        if i not in referenced:
            warnings.append(f"Resource {i} ('{name}') is not assigned to any item.")

    return errors, warnings


# ── Schedule Layout ──────────────────────────────────────────────────────────

def scan(step, state, items):
    """Thread state through step over items. Returns (final state, per-item results)."""
    results = []
    for item in items:
        state, result = step(state, item)
        results.append(result)
    return state, results


def _span_step(state, item):
    """First pass: move the cursor over one item, tracking the project span."""
    cursor, start_date, end_date = state
    item_start = item.get("start_date")
    if item_start is not None:
        cursor = item_start
        if start_date is None or item_start < start_date:
            start_date = item_start + weekend_shift(item_start)

    shadow = None
    if item.get("duration") is not None:
        shadow = shadow_duration(cursor, item["duration"])
        cursor += timedelta(days=shadow)

    if end_date is None or end_date < cursor:
        end_date = cursor
    return SpanState(cursor, start_date, end_date), shadow


def schedule_span(items):
    """Project start (moved off a weekend), latest cursor, and per-item shadow durations."""
    state, shadows = scan(_span_step, SpanState(None, None, None), items)
    return state.start_date, state.end_date, shadows


def month_columns(start_date, end_date, max_month_width):
    """One column per calendar month from start_date to end_date inclusive."""
    columns = []
    d = month_start(start_date)
    while d <= end_date:
        days = days_in_month(d.year, d.month)
        columns.append(Column(max_month_width * days / 31.0, MONTH_NAMES[d.month - 1], days))
        d = next_month(d)
    return columns


def date_offset(instant, start_date, total_days, total_width, title_width, gutter):
    """Horizontal position of an instant on the chart."""
    return title_width + gutter.left + whole_days(instant - start_date) / total_days * total_width


def _row_step(to_offset, days_to_width, state, item):
    """Second pass: position one row and carry the cursor and resource forward."""
    cursor, resource_index = state
    if item.get("start_date") is not None:
        cursor = item["start_date"]
    offset = to_offset(cursor)

    length = None
    if item.get("duration") is not None:
        shadow = shadow_duration(cursor, item["duration"])
        cursor += timedelta(days=shadow)
        length = days_to_width(shadow)

    if item.get("resource") is not None:
        resource_index = item["resource"]

    row = Row(item["title"], resource_index, offset, length, bool(item.get("open", False)))
    return RowState(cursor, resource_index), row


def hsv_to_rgb(h, s, v):
    """Convert HSV (each in [0, 1)) to a 0xRRGGBB integer."""
    h_i = int(h * 6)
    f = h * 6 - h_i
    p = v * (1 - s)
    q = v * (1 - f * s)
    t = v * (1 - (1 - f) * s)

    sectors = [(v, t, p), (q, v, p), (p, v, t), (p, q, v), (t, p, v), (v, p, q)]
    r, g, b = sectors[min(h_i, 5)]

    def channel(x):
        return min(255, int(x * 256))

    return channel(r) << 16 | channel(g) << 8 | channel(b)


def resource_hues(count, rng=None):
    """Hues for count resources: a random start stepped by the golden ratio conjugate."""
    rng = rng or random
    h = rng.random()
    hues = []
    for _ in range(count):
        hues.append(h)
        h = (h + GOLDEN_RATIO_CONJUGATE) % 1.0
    return hues


def assign_resource_styles(count, rng=None):
    """Map (resource index, open) to its ResourceStyle.
    Closed tasks are filled; open tasks are drawn as a thicker outline."""
    styles = {}
    for i, h in enumerate(resource_hues(count, rng)):
        color = f"#{hsv_to_rgb(h, RESOURCE_SATURATION, RESOURCE_VALUE):06x}"
        styles[(i, False)] = ResourceStyle(f"resource-{i}-closed", color, color, 1, False)
        styles[(i, True)] = ResourceStyle(f"resource-{i}-open", "none", color, 2, True)
    return styles


def build_layout(chart, title_width=DEFAULT_TITLE_WIDTH,
                 max_month_width=DEFAULT_MAX_MONTH_WIDTH, rng=None):
    """Validate the chart and compute every position and size needed to draw it."""
    if title_width < 0:
        raise ChartError(f"Title width must not be negative (got {title_width}).")
    if max_month_width < 0:
        raise ChartError(f"Maximum month width must not be negative (got {max_month_width}).")

    errors, _ = validate_chart(chart)
    if errors:
        raise ChartError(errors[0])

    items = chart["items"]
    project_start, project_end, shadow_durations = schedule_span(items)
    start_date = month_start(project_start)
    # A weekend start can snap past every cursor; the chart always covers its start month
    end_date = month_end(max(project_end, project_start))

    columns = month_columns(start_date, end_date, max_month_width)
    total_width = sum(col.width for col in columns)
    total_days = sum(col.days for col in columns)

    gutter = Gutter(*STYLE["gutter"])
    row_gutter = Gutter(*STYLE["row_gutter"])
    resource_gutter = Gutter(*STYLE["resource_gutter"])

    to_offset = partial(date_offset, start_date=start_date, total_days=total_days,
                        total_width=total_width, title_width=title_width, gutter=gutter)

    def days_to_width(days):
        return days / total_days * total_width

    _, rows = scan(partial(_row_step, to_offset, days_to_width),
                   RowState(start_date, items[0]["resource"]), items)

    marked_date = chart.get("marked_date")
    marked_date_offset = to_offset(marked_date) if marked_date is not None else None

    return Layout(
        title=chart["title"],
        gutter=gutter,
        row_gutter=row_gutter,
        row_height=row_gutter.height() + STYLE["row_body_height"],
        resource_gutter=resource_gutter,
        resource_height=resource_gutter.height() + STYLE["resource_body_height"],
        rect_corner_radius=STYLE["rect_corner_radius"],
        title_width=title_width,
        max_month_width=max_month_width,
        start_date=start_date,
        end_date=end_date,
        total_days=total_days,
        total_width=total_width,
        columns=tuple(columns),
        rows=tuple(rows),
        shadow_durations=tuple(shadow_durations),
        marked_date_offset=marked_date_offset,
        resources=tuple(chart["resources"]),
        resource_styles=assign_resource_styles(len(chart["resources"]), rng),
    )


# ── Scene Building ───────────────────────────────────────────────────────────

def resource_style_declarations(style):
    return {"fill": style.fill, "stroke-width": style.stroke_width, "stroke": style.stroke}


def chart_styles(layout):
    """Base classes followed by closed/open classes for each resource."""
    styles = {name: dict(decls) for name, decls in BASE_STYLES.items()}
    for i in range(len(layout.resources)):
        for is_open in (False, True):
            style = layout.resource_styles[(i, is_open)]
            styles[style.class_name] = resource_style_declarations(style)
    return styles


def css_rule(class_name, declarations):
    return "." + class_name + "{" + "".join(f"{k}:{v};" for k, v in declarations.items()) + "}"


def stylesheet(styles):
    return "\n".join(css_rule(name, decls) for name, decls in styles.items())


def canvas_size(layout, add_resource_table=False):
    """Overall (width, height) of the drawing."""
    width = (layout.gutter.left + layout.title_width
             + sum(col.width for col in layout.columns) + layout.gutter.right)
    height = layout.gutter.top + len(layout.rows) * layout.row_height + layout.gutter.bottom
    if add_resource_table:
        height += layout.resource_gutter.height() + layout.resource_height
    return width, height


def _build_columns(layout, chart_bottom):
    children = []
    lefts = np.concatenate(([0.0], np.cumsum([col.width for col in layout.columns])))
    heading_y = layout.gutter.top - layout.row_gutter.bottom - layout.row_height / 2
    for i, left in enumerate(lefts):
        x = float(layout.gutter.left + layout.title_width + left)
        children.append(Line(x, layout.gutter.top, x, chart_bottom, "inner-lines"))
        if i < len(layout.columns):
            children.append(Text(layout.columns[i].month_name,
                                 x + layout.max_month_width / 2, heading_y, "heading"))
    return Group("columns", tuple(children))


def _build_rows(layout, width):
    children = []
    body_height = layout.row_height - layout.row_gutter.height()
    n_rows = len(layout.rows)
    for i in range(n_rows + 1):
        y = layout.gutter.top + i * layout.row_height
        line_class = "outer-lines" if i in (0, n_rows) else "inner-lines"
        children.append(Line(layout.gutter.left, y, width - layout.gutter.right, y, line_class))
        if i == n_rows:
            break

        row = layout.rows[i]
        children.append(Text(row.title, layout.gutter.left + layout.row_gutter.left,
                             y + layout.row_gutter.top + layout.row_height / 2, "item"))
        if row.is_milestone:
            n = body_height / 2
            children.append(Path((
                ("M", row.offset - n, y + layout.row_gutter.top + n),
                ("l", n, -n),
                ("l", n, n),
                ("l", -n, n),
                ("l", -n, -n),
            ), "milestone"))
        else:
            style = layout.resource_styles[(row.resource_index, row.open)]
            children.append(Rect(row.offset, y + layout.row_gutter.top, row.length, body_height,
                                 layout.rect_corner_radius, style.class_name))
    return Group("rows", tuple(children))


def _build_legend(layout, top):
    children = []
    cell = STYLE["legend_cell_width"]
    gap = STYLE["legend_label_gap"]
    block = layout.resource_height - layout.resource_gutter.height()
    for i, name in enumerate(layout.resources):
        x = layout.resource_gutter.left + (i + 1) * cell
        children.append(Text(name, x - gap, top + layout.resource_height / 2, "resource"))
        children.append(Rect(x + gap, top + layout.resource_gutter.top, block, block,
                             layout.rect_corner_radius, layout.resource_styles[(i, False)].class_name))
    return Group("resources", tuple(children))


def build_scene(layout, add_resource_table=False):
    """Turn a layout into a Scene of drawing primitives, in document order."""
    width, height = canvas_size(layout, add_resource_table)
    chart_bottom = layout.gutter.top + len(layout.rows) * layout.row_height

    title = Text(layout.title, layout.gutter.left, STYLE["title_y"], "title")
    tasks_heading = Text("Tasks", layout.gutter.left + layout.row_gutter.left,
                         layout.gutter.top - layout.row_gutter.bottom - layout.row_height / 2,
                         "heading task-heading")

    # Bare line when a date is marked, an empty placeholder group otherwise
    marker = Group("marker", ())
    if layout.marked_date_offset is not None:
        x = layout.marked_date_offset
        marker = Line(x, layout.gutter.top - STYLE["marker_overhang"],
                      x, chart_bottom + STYLE["marker_overhang"], "marker")

    legend = Group("resources", ())
    if add_resource_table:
        legend = _build_legend(layout, chart_bottom)

    children = (
        title,
        _build_columns(layout, chart_bottom),
        tasks_heading,
        _build_rows(layout, width),
        marker,
        legend,
    )
    return Scene(width, height, chart_styles(layout), children)


# ── Output: SVG ──────────────────────────────────────────────────────────────

def _svg_element(dwg, node):
    if isinstance(node, Group):
        group = dwg.g(id=node.name)
        for child in node.children:
            group.add(_svg_element(dwg, child))
        return group
    if isinstance(node, Line):
        return dwg.line(start=(node.x1, node.y1), end=(node.x2, node.y2), class_=node.class_name)
    if isinstance(node, Rect):
        return dwg.rect(insert=(node.x, node.y), size=(node.width, node.height),
                        rx=node.radius, ry=node.radius, class_=node.class_name)
    if isinstance(node, Path):
        path = dwg.path(class_=node.class_name)
        for command in node.commands:
            path.push(*command)
        return path
    if isinstance(node, Text):
        return dwg.text(node.text, insert=(node.x, node.y), class_=node.class_name)
    raise TypeError(f"Cannot draw {type(node).__name__}")


def svg_drawing(scene):
    """Build the svgwrite Drawing for a scene."""
    dwg = svgwrite.Drawing(size=(scene.width, scene.height), debug=False)
    dwg.viewbox(0, 0, scene.width, scene.height)
    dwg["style"] = f"background-color: {STYLE['background']};"
    dwg.defs.add(dwg.style(stylesheet(scene.styles)))
    for node in scene.children:
        dwg.add(_svg_element(dwg, node))
    return dwg


def write_svg(scene, target):
    """Write the scene as SVG to a path or an open text stream."""
    dwg = svg_drawing(scene)
    if hasattr(target, "write"):
        dwg.write(target, pretty=True)
        target.write("\n")
        return
    dirname = os.path.dirname(target)
    if dirname:
        os.makedirs(dirname, exist_ok=True)
    with open(target, "w", encoding="utf-8") as fh:
        dwg.write(fh, pretty=True)


# ── Output: PNG ──────────────────────────────────────────────────────────────

def _declarations(class_name, styles):
    """Merge the declarations of a space separated class list."""
    decls = {}
    for name in class_name.split():
        decls.update(styles.get(name, {}))
    return decls


def _font_size(value):
    """CSS font size to pixels (pt are 4/3 px)."""
    text = str(value).strip()
    if text.endswith("pt"):
        return float(text[:-2]) * 4 / 3
    if text.endswith("px"):
        return float(text[:-2])
    return float(text)


_TEXT_ANCHOR = {"start": "left", "middle": "center", "end": "right"}


def _draw_node(ax, node, styles):
    if isinstance(node, Group):
        for child in node.children:
            _draw_node(ax, child, styles)
        return

    decls = _declarations(node.class_name, styles)
    linewidth = float(decls.get("stroke-width", 1))
    edgecolor = decls.get("stroke", "none")
    facecolor = decls.get("fill", "none")

    if isinstance(node, Line):
        linestyle = "-"
        if "stroke-dasharray" in decls:
            dash = float(decls["stroke-dasharray"]) / linewidth
            linestyle = (0, (dash, dash))
        ax.plot([node.x1, node.x2], [node.y1, node.y2], color=edgecolor,
                linewidth=linewidth, linestyle=linestyle, solid_capstyle="butt", zorder=1)
    elif isinstance(node, Rect):
        if node.width <= 0:
            return
        ax.add_patch(FancyBboxPatch(
            (node.x, node.y), node.width, node.height,
            boxstyle=f"round,pad=0,rounding_size={node.radius}",
            facecolor=facecolor, edgecolor=edgecolor, linewidth=linewidth, zorder=3,
        ))
    elif isinstance(node, Path):
        x = y = 0.0
        vertices = []
        for command, dx, dy in node.commands:
            if command == "M":
                x, y = dx, dy
            else:
                x, y = x + dx, y + dy
            vertices.append((x, y))
        ax.add_patch(Polygon(vertices, closed=True, facecolor=facecolor,
                             edgecolor=edgecolor, linewidth=linewidth, zorder=3))
    elif isinstance(node, Text):
        va = "center" if decls.get("dominant-baseline") == "middle" else "baseline"
        ha = _TEXT_ANCHOR.get(decls.get("text-anchor", "start"), "left")
        ax.text(node.x, node.y, node.text, ha=ha, va=va,
                fontsize=_font_size(decls.get("font-size", "12pt")),
                fontfamily=[decls.get("font-family", "Arial"), STYLE["font_fallback"]],
                zorder=5)
    else:
        raise TypeError(f"Cannot draw {type(node).__name__}")


def render_png(scene, output_path, dpi=None):
    """Render the scene to a PNG with matplotlib. One scene unit is one point."""
    fig = plt.figure(figsize=(scene.width / 72.0, scene.height / 72.0), dpi=72,
                     facecolor=STYLE["background"])
    ax = fig.add_axes([0, 0, 1, 1])
    ax.set_xlim(0, scene.width)
    ax.set_ylim(scene.height, 0)
    ax.axis("off")

    for node in scene.children:
        _draw_node(ax, node, scene.styles)

    dirname = os.path.dirname(output_path)
    if dirname:
        os.makedirs(dirname, exist_ok=True)
    fig.savefig(output_path, dpi=dpi or STYLE["dpi"], facecolor=STYLE["background"])
    plt.close(fig)


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None, log=None):
    parser = argparse.ArgumentParser(
        description="Gantt Chart Tool: generate an SVG or PNG Gantt chart from a JSON or Excel schedule"
    )
    parser.add_argument(
        "input", nargs="?", default=None,
        help="Schedule file (.json, .xlsx or .xlsm). Reads JSON from stdin if omitted."
    )
    parser.add_argument(
        "output", nargs="?", default=None,
        help="Output file (.svg or .png). Writes SVG to stdout if omitted."
    )
    parser.add_argument(
        "-t", "--title-width", type=float, default=DEFAULT_TITLE_WIDTH,
        help=f"Width of the item title column (default: {DEFAULT_TITLE_WIDTH:g})"
    )
    parser.add_argument(
        "-m", "--max-month-width", type=float, default=DEFAULT_MAX_MONTH_WIDTH,
        help=f"Width of a 31-day month column (default: {DEFAULT_MAX_MONTH_WIDTH:g})"
    )
    parser.add_argument(
        "-a", "--add-resource-table", action="store_true",
        help="Add a resource legend at the bottom of the chart"
    )
    parser.add_argument(
        "--template", metavar="PATH", default=None,
        help="Write an example Excel schedule to PATH and exit"
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Seed for the resource colours (default: random)"
    )
    args = parser.parse_args(argv)

    if log is None:
        # Keep stdout clean when the chart itself goes there
        log = ConsoleLog(sys.stderr if args.output is None and not args.template else None)

    if args.template:
        generate_template(args.template, log=log)
        return

    if args.input is not None and not os.path.exists(args.input):
        log.error(f"Input file not found: {args.input}")
        log.output("Run with --template PATH first to create an example schedule.")
        sys.exit(1)

    try:
        chart = load_chart(args.input, log=log)
    except (ValueError, OSError) as e:
        log.error(f"Could not load schedule: {e}")
        sys.exit(1)

    _, warnings = validate_chart(chart)
    for w in warnings:
        log.warning(w)

    rng = random.Random(args.seed) if args.seed is not None else None
    try:
        layout = build_layout(chart, args.title_width, args.max_month_width, rng=rng)
    except ChartError as e:
        log.error(str(e))
        sys.exit(1)

    scene = build_scene(layout, args.add_resource_table)

    if args.output is None:
        write_svg(scene, sys.stdout)
    elif os.path.splitext(args.output)[1].lower() == ".png":
        render_png(scene, args.output)
        log.output(f"  Gantt chart saved: {args.output}")
    else:
        write_svg(scene, args.output)
        log.output(f"  Gantt chart saved: {args.output}")


if __name__ == "__main__":
    main()
