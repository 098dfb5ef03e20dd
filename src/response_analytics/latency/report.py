"""Entry point that picks the execution engine for one report run."""

import logging
from typing import Optional

import pandas as pd

from response_analytics.latency.config import PipelineConfig
from response_analytics.latency.pipeline import ResponseLatencyPipeline
from response_analytics.latency.schema import REPORT_COLUMNS
from response_analytics.latency.sources import DataSource, PostgresTableSource
from response_analytics.latency.sql import build_manager_latency_query
from response_analytics.shared.database.postgres import PostgresConnection

logger = logging.getLogger(__name__)


def _run_in_database(
    config: PipelineConfig, connection: PostgresConnection
) -> pd.DataFrame:
    query, params = build_manager_latency_query(config)
    return connection.fetch_dataframe(
        query,
        params,
        timeout_seconds=config.timeout_seconds,
        columns=REPORT_COLUMNS,
    )


def _run_in_pandas(
    config: PipelineConfig, source: DataSource
) -> pd.DataFrame:
    frames = source.load()
    result = ResponseLatencyPipeline(config).run(
        frames.messages, frames.managers, frames.supervisors
    )
    return result.report


def run_report(
    config: Optional[PipelineConfig] = None,
    connection: Optional[PostgresConnection] = None,
    source: Optional[DataSource] = None,
) -> pd.DataFrame:
    """
    Produce the manager response latency report.

    Args:
        config: Report configuration; defaults match the deal-chat tables.
        connection: Database connection. When omitted and one is needed, a
            `PostgresConnection` is opened from DATABASE_URL and closed again.
        source: Input source for the pandas engine. Defaults to the tables
            named in the config.

    Returns:
        DataFrame with supervisor_name, manager_name and avg_minutes, sorted
        ascending by avg_minutes.

    Raises:
        ValueError: If a source is given with the database engine, which only
            reads the configured tables.
    """
    config = config or PipelineConfig()
    if config.engine == 'database' and source is not None:
        raise ValueError('A source can only be used with the pandas engine.')

    if config.engine == 'pandas' and source is not None:
        logger.info(f'Running response latency report in pandas ({source.source_key})')
        return _run_in_pandas(config, source)

    owns_connection = connection is None
    db = connection or PostgresConnection()
    try:
        if config.engine == 'database':
            logger.info('Running response latency report in the database')
            report = _run_in_database(config, db)
        else:
            table_source = PostgresTableSource(config, db)
            logger.info(
                'Running response latency report in pandas '
                f'({table_source.source_key})'
            )
            report = _run_in_pandas(config, table_source)
    finally:
        if owns_connection:
            db.close()

    logger.info(f'Response latency report has {len(report)} row(s)')
    return report
