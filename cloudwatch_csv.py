#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = []
# ///
"""
CloudWatch Metric Data to CSV Converter

Convert the output of `aws cloudwatch get-metric-data` into a CSV table with
one column per series and one row per timestamp, in the local time zone.
"""

import argparse
import csv
import json
import re
import sys
from datetime import datetime, timezone
from typing import Optional, TextIO


TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

COMPLETE_STATUS = "Complete"

ORIENTATIONS = ("time-down", "time-across")


class IncompleteResultError(ValueError):
    """A series came back with a StatusCode other than Complete."""

    def __init__(self, label: str, status: str) -> None:
        super().__init__(f'StatusCode is not {COMPLETE_STATUS}. Label: "{label}" ({status})')
        self.label = label
        self.status = status


def parse_timestamp(ts_str: str) -> datetime:
    """Parse ISO format timestamp string into datetime."""
    if not isinstance(ts_str, str):
        raise ValueError(f"Timestamp is not a string: {ts_str!r}")
    ts_str = ts_str.strip()
    # strptime reads at most microseconds
    normalized = re.sub(r"(\.\d{6})\d+", r"\1", ts_str.replace("Z", "+0000"))

    for fmt in [
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%dT%H:%M%z",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%Y-%m-%dT%H:%M",
        "%Y-%m-%d %H:%M:%S",
    ]:
        try:
            dt = datetime.strptime(normalized, fmt)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        except ValueError:
            continue

    raise ValueError(f"Unable to parse timestamp: {ts_str}")


def format_timestamp(ts_str: str, fmt: str = TIME_FORMAT) -> str:
    """Render a timestamp in the local time zone. Use DATE_FORMAT for dates only."""
    return parse_timestamp(ts_str).astimezone().strftime(fmt)


def check_complete(results: list[dict]) -> None:
    """Raise IncompleteResultError for the first series that is not Complete."""
    for result in results:
        status = result.get("StatusCode")
        if status != COMPLETE_STATUS:
            raise IncompleteResultError(result.get("Label", "?"), status)


def _series_field(result: dict, key: str) -> list:
    value = result.get(key)
    if not isinstance(value, list):
        raise ValueError(f'Series "{result.get("Label", "?")}" has no {key} array')
    return value


def series_values(result: dict, fmt: str = TIME_FORMAT) -> dict:
    """Map each local time of a series to its value, in chronological order.

    get-metric-data returns Timestamps and Values newest first.
    """
    timestamps = _series_field(result, "Timestamps")
    values = _series_field(result, "Values")
    if len(timestamps) != len(values):
        raise ValueError(
            f'Series "{result.get("Label", "?")}" has {len(timestamps)} timestamps '
            f"but {len(values)} values"
        )
    for value in values:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(
                f'Series "{result.get("Label", "?")}" has a non-numeric value: {value!r}'
            )

    times = [format_timestamp(ts, fmt) for ts in reversed(timestamps)]
    return dict(zip(times, reversed(values)))


def build_time_axis(results: list[dict], fmt: str = TIME_FORMAT) -> list[str]:
    """Sorted union of the local times of every series."""
    times = set()
    for result in results:
        times.update(format_timestamp(ts, fmt) for ts in _series_field(result, "Timestamps"))
    return sorted(times)


def build_table(results: list[dict], fmt: str = TIME_FORMAT) -> list[list]:
    """Pivot the series onto a shared time axis.

    The first row is "Time" followed by the axis; every other row is a label
    followed by that series' value at each axis time, or None where the series
    has no data point.
    """
    check_complete(results)

    time_header = build_time_axis(results, fmt)
    rows = [["Time", *time_header]]
    for result in results:
        values_by_time = series_values(result, fmt)
        rows.append([result.get("Label", ""), *(values_by_time.get(t) for t in time_header)])
    return rows


def transpose(rows: list[list]) -> list[list]:
    return [list(column) for column in zip(*rows)]


def orient(rows: list[list], orientation: str = "time-down") -> list[list]:
    """Lay out a table from build_table.

    "time-down" aligns time series from top to bottom; "time-across" keeps
    one series per row, aligned left to right.
    """
    if orientation == "time-down":
        return transpose(rows)
    if orientation == "time-across":
        return rows
    raise ValueError(f"Unknown orientation: {orientation}. Use one of {', '.join(ORIENTATIONS)}")


def write_csv(rows: list[list], stream: TextIO) -> None:
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerows(rows)


def load_results(path: str) -> list[dict]:
    """Read a `get-metric-data` JSON file and return its MetricDataResults array."""
    with open(path, encoding="utf-8") as f:
        document = json.load(f)

    if not isinstance(document, dict) or "MetricDataResults" not in document:
        raise ValueError(f"{path}: missing top-level 'MetricDataResults' field")
    results = document["MetricDataResults"]
    if not isinstance(results, list) or not all(isinstance(r, dict) for r in results):
        raise ValueError(f"{path}: 'MetricDataResults' is not an array of objects")
    return results


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Convert CloudWatch get-metric-data output to CSV",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One row per timestamp, one column per series
  %(prog)s result.json > result.csv

  # One row per series instead
  %(prog)s result.json --orientation time-across

  # Daily data: drop the time of day from the axis
  %(prog)s result.json --date-only

  # Render in a specific time zone
  TZ=Asia/Tokyo %(prog)s result.json
        """,
    )
    parser.add_argument(
        "result_file",
        help="JSON file obtained by `aws cloudwatch get-metric-data`",
    )
    parser.add_argument(
        "--orientation", choices=ORIENTATIONS, default="time-down",
        help="time-down: series as columns; time-across: series as rows. Default: time-down",
    )
    parser.add_argument(
        "--date-only", action="store_true",
        help="Format the time axis as YYYY-MM-DD",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Print a summary to stderr",
    )

    args = parser.parse_args(argv)
    fmt = DATE_FORMAT if args.date_only else TIME_FORMAT

    try:
        results = load_results(args.result_file)
        rows = build_table(results, fmt)
    except (OSError, ValueError) as e:
        print(f"Error converting metric data: {e}", file=sys.stderr)
        sys.exit(1)

    write_csv(orient(rows, args.orientation), sys.stdout)

    if args.verbose:
        print(f"Total: {len(rows) - 1} series, {len(rows[0]) - 1} timestamps", file=sys.stderr)


if __name__ == "__main__":
    main()
