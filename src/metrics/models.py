"""TypedDict models for rows of the ``metrics`` table."""

from datetime import datetime
from typing_extensions import TypedDict


class MetricRecord(TypedDict, total=False):
    timestamp: datetime
    server_hostname: str
    cpu_usage: float  # percent
    cpu_cores: int
    cpu_model: str
    cpu_speed: float  # GHz
    cpu_load_1m: float
    cpu_load_5m: float
    cpu_load_15m: float
    memory_total: int  # bytes
    memory_free: int
    memory_used: int
    memory_percentage: float
    disk_filesystem: str
    disk_size: int  # bytes
    disk_used: int
    disk_available: int
    disk_percentage: float
    network_interface: str
    network_rx_bytes: int
    network_tx_bytes: int
    network_rx_rate: float  # bytes/sec
    network_tx_rate: float
    network_connections: int
    created_at: datetime


METRIC_COLUMNS: tuple[str, ...] = tuple(MetricRecord.__annotations__)
