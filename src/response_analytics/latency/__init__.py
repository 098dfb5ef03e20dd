"""
Manager Response Latency

Average time managers take to answer client messages in deal chats, per
manager and supervisor.

Components:
- config: YAML-backed report configuration (tables, columns, window, period)
- schema: canonical column names, ingestion and identifier normalization
- window: off-hours shift and day-crossing latency arithmetic
- stages: the pipeline stages as DataFrame functions
- pipeline: in-process (pandas) execution
- sql: in-database (PostgreSQL) execution
- sources: input relations from memory or PostgreSQL
- report: engine selection
"""

from response_analytics.latency.config import (
    OffHoursWindow,
    PipelineConfig,
    ReportPeriod,
    load_pipeline_config,
)
from response_analytics.latency.pipeline import (
    PipelineResult,
    ResponseLatencyPipeline,
    run_pipeline,
)
from response_analytics.latency.report import run_report
from response_analytics.latency.schema import ManagerLatency, ReferenceDataError
from response_analytics.latency.sources import (
    DataFrameSource,
    DataSource,
    PostgresTableSource,
    SourceFrames,
)
from response_analytics.latency.sql import build_manager_latency_query
from response_analytics.latency.window import (
    response_latency_minutes,
    shift_off_hours,
)

__all__ = [
    # Config
    'OffHoursWindow',
    'PipelineConfig',
    'ReportPeriod',
    'load_pipeline_config',
    # Pipeline
    'PipelineResult',
    'ResponseLatencyPipeline',
    'run_pipeline',
    'run_report',
    # Schema
    'ManagerLatency',
    'ReferenceDataError',
    # Sources
    'DataFrameSource',
    'DataSource',
    'PostgresTableSource',
    'SourceFrames',
    # SQL
    'build_manager_latency_query',
    # Window arithmetic
    'response_latency_minutes',
    'shift_off_hours',
]
