"""Prometheus metrics for the provider switchboard"""

from prometheus_client import Counter, Histogram

PROVIDER_SWITCHES = Counter(
    "switchboard_provider_switches_total",
    "Total number of provider switch attempts",
    ["app_type", "outcome"],
)

CONFIG_APPLIES = Counter(
    "switchboard_config_applies_total",
    "Total number of provider projections onto external config files",
    ["app_type", "outcome"],
)

PROBE_RESULTS = Counter(
    "switchboard_probe_results_total",
    "Total number of provider probes by outcome",
    ["app_type", "status"],
)

PROBE_LATENCY = Histogram(
    "switchboard_probe_latency_seconds",
    "Provider probe latency in seconds",
    ["app_type"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf")),
)
