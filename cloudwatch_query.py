#!/usr/bin/env python3
# /// script
# requires-python = ">=3.10"
# dependencies = []
# ///
"""
CloudWatch Metric Data Query Builder

Build a --metric-data-queries document for `aws cloudwatch get-metric-data`
from the output of `aws cloudwatch list-metrics`, keeping only the metrics
and statistics listed in TARGET_METRICS.
"""

import argparse
import copy
import hashlib
import json
import sys
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional


# The granularity, in seconds, of the returned data points.
PERIOD = 3600 * 24  # 1 day

# { Namespace => { MetricName => (Stats) } }
TARGET_METRICS: Mapping[str, Mapping[str, tuple[str, ...]]] = MappingProxyType({
    namespace: MappingProxyType(metrics)
    for namespace, metrics in {
        "AWS/DynamoDB": {
            "ConsumedReadCapacityUnits": ("Sum",),
            "ConsumedWriteCapacityUnits": ("Sum",),
        },
        "AWS/ECS": {
            "CPUUtilization": ("Minimum", "Maximum", "Average"),
            "MemoryUtilization": ("Minimum", "Maximum", "Average"),
        },
        "AWS/Firehose": {
            "DataReadFromKinesisStream.Bytes": ("Sum",),
            "SucceedConversion.Bytes": ("Sum",),
        },
        "AWS/Glue": {
            "ResourceUsage": ("Minimum", "Maximum", "Average"),
        },
        "AWS/IoT": {
            "Connect.Success": ("Sum",),
            "PublishIn.Success": ("Sum",),
            "PublishOut.Success": ("Sum",),
        },
        "AWS/Kinesis": {
            "IncomingBytes": ("Sum",),
        },
        "AWS/MWAA": {
            "CPUUtilization": ("Minimum", "Maximum", "Average"),
            "MemoryUtilization": ("Minimum", "Maximum", "Average"),
        },
        "AWS/RDS": {
            "CPUUtilization": ("Minimum", "Maximum", "Average"),
        },
        "AWS/Redshift": {
            "CPUUtilization": ("Minimum", "Maximum", "Average"),
        },
        "ECS/ContainerInsights": {
            "CpuReserved": ("Average",),
            "MemoryReserved": ("Average",),
            "RunningTaskCount": ("Average",),
        },
    }.items()
})


def to_compact_json(obj) -> str:
    """Serialize obj the same way on every run: no whitespace, key order kept."""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def query_id(metric: dict, stat: str) -> str:
    """Build a stable query Id from a metric descriptor and statistic.

    Valid Id characters are letters, numbers and underscore, and the first
    character must be a lowercase letter, hence the "h" prefix on the digest.
    """
    digest = hashlib.md5(
        to_compact_json([metric, stat]).encode("utf-8"), usedforsecurity=False
    ).hexdigest()
    return "h" + digest


@dataclass(frozen=True)
class MetricQuery:
    """One MetricDataQuery entry: a metric, a period and a statistic."""

    id: str
    metric: dict
    period: int
    stat: str

    def to_dict(self) -> dict:
        return {
            "Id": self.id,
            "MetricStat": {
                "Metric": self.metric,
                "Period": self.period,
                "Stat": self.stat,
            },
        }


def is_target_metric(
    metric: dict,
    targets: Mapping[str, Mapping[str, tuple[str, ...]]] = TARGET_METRICS,
) -> bool:
    """Return True if the metric's namespace and name are in targets."""
    return metric["MetricName"] in targets.get(metric["Namespace"], {})


def create_metric_queries(
    metric: dict, stats: tuple[str, ...], period: int = PERIOD
) -> list[MetricQuery]:
    """Create one query per statistic, each holding its own copy of metric."""
    return [
        MetricQuery(
            id=query_id(metric, stat),
            metric=copy.deepcopy(metric),
            period=period,
            stat=stat,
        )
        for stat in stats
    ]


def sort_key(query: MetricQuery) -> tuple[str, str, str, str]:
    return (
        query.metric["Namespace"],
        query.metric["MetricName"],
        to_compact_json(query.metric.get("Dimensions")),
        query.stat,
    )


def validate_metrics(metrics: list) -> None:
    """Check that every descriptor carries the keys the builder reads."""
    for index, metric in enumerate(metrics):
        if not isinstance(metric, dict):
            raise ValueError(f"Metrics[{index}] is not an object")
        for key in ("Namespace", "MetricName"):
            if key not in metric:
                raise ValueError(f"Metrics[{index}] has no {key!r} field")
            if not isinstance(metric[key], str):
                raise ValueError(f"Metrics[{index}] field {key!r} is not a string")
        if not isinstance(metric.get("Dimensions", []), list):
            raise ValueError(f"Metrics[{index}] field 'Dimensions' is not an array")


def build_queries(
    metrics: list,
    targets: Mapping[str, Mapping[str, tuple[str, ...]]] = TARGET_METRICS,
    period: int = PERIOD,
) -> list[MetricQuery]:
    """Filter metrics against targets, expand them per statistic and sort."""
    validate_metrics(metrics)

    queries = []
    for metric in metrics:
        if not is_target_metric(metric, targets):
            continue
        stats = targets[metric["Namespace"]][metric["MetricName"]]
        queries.extend(create_metric_queries(metric, stats, period))

    queries.sort(key=sort_key)
    return queries


def load_metrics(path: str) -> list:
    """Read a `list-metrics` JSON file and return its Metrics array."""
    with open(path, encoding="utf-8") as f:
        document = json.load(f)

    if not isinstance(document, dict) or "Metrics" not in document:
        raise ValueError(f"{path}: missing top-level 'Metrics' field")
    metrics = document["Metrics"]
    if not isinstance(metrics, list):
        raise ValueError(f"{path}: 'Metrics' is not an array")
    return metrics


def output_json(queries: list[MetricQuery]) -> None:
    """Print the queries as a single-line JSON array on stdout."""
    output = [query.to_dict() for query in queries]
    print(json.dumps(output, ensure_ascii=False))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Build a CloudWatch get-metric-data query from list-metrics output",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build the query from the metrics available in the account
  aws cloudwatch list-metrics > metrics.json
  %(prog)s metrics.json > query.json

  # Fetch one month of data with it
  aws cloudwatch get-metric-data \\
    --metric-data-queries file://query.json \\
    --start-time "2023-06-01T00:00:00+0900" \\
    --end-time "2023-07-01T00:00:00+0900" \\
    | tee result.json
        """,
    )
    parser.add_argument(
        "metrics_file",
        help="JSON file obtained by `aws cloudwatch list-metrics`",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Print a summary to stderr",
    )

    args = parser.parse_args(argv)

    try:
        metrics = load_metrics(args.metrics_file)
        queries = build_queries(metrics)
    except (OSError, ValueError) as e:
        print(f"Error building query: {e}", file=sys.stderr)
        sys.exit(1)

    output_json(queries)

    if args.verbose:
        selected = sum(1 for metric in metrics if is_target_metric(metric))
        print(f"Metrics: {len(metrics)} read, {selected} selected", file=sys.stderr)
        print(f"Total: {len(queries)} queries", file=sys.stderr)


if __name__ == "__main__":
    main()
