"""
Data sources for the response latency report.

A source returns the three raw relations (messages, managers, supervisors)
with their source column names; `response_analytics.latency.schema` maps
them to canonical frames.

Example:
    from response_analytics.latency.sources import PostgresTableSource

    with PostgresConnection() as db:
        frames = PostgresTableSource(config, db).load()
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import pandas as pd

from response_analytics.latency.config import PipelineConfig
from response_analytics.shared.database.postgres import PostgresConnection

logger = logging.getLogger(__name__)


@dataclass
class SourceFrames:
    """Raw input relations, still in source column names."""

    messages: pd.DataFrame
    managers: pd.DataFrame
    supervisors: pd.DataFrame


class DataSource(ABC):
    """Abstract base for sources that provide the report's input relations."""

    @property
    @abstractmethod
    def source_key(self) -> str:
        """Identifier of this source, used in log lines."""
        pass

    @abstractmethod
    def load(self) -> SourceFrames:
        pass


class DataFrameSource(DataSource):
    """Serve relations that are already in memory (notebooks, exports, tests)."""

    def __init__(
        self,
        messages: pd.DataFrame,
        managers: pd.DataFrame,
        supervisors: pd.DataFrame,
        name: str = 'in_memory',
    ):
        self._frames = SourceFrames(
            messages=messages, managers=managers, supervisors=supervisors
        )
        self._name = name

    @property
    def source_key(self) -> str:
        return f'dataframe:{self._name}'

    def load(self) -> SourceFrames:
        return SourceFrames(
            messages=self._frames.messages.copy(),
            managers=self._frames.managers.copy(),
            supervisors=self._frames.supervisors.copy(),
        )


class PostgresTableSource(DataSource):
    """Read the three relations from PostgreSQL tables named in the config.

    Messages are streamed in chunks of `config.chunk_size`. With
    `period.until` set, messages created after it are not read since they
    can neither be replies in the period nor precede one. The lower bound is
    applied after linking, because a reply's predecessor may be older.
    """

    def __init__(self, config: PipelineConfig, connection: PostgresConnection):
        self._config = config
        self._connection = connection

    @property
    def source_key(self) -> str:
        return f'postgres:{self._config.tables.messages}'

    @staticmethod
    def _with_time_bounds(
        query: str,
        time_column: str,
        oldest_epoch: Optional[int],
        latest_epoch: Optional[int],
    ) -> tuple[str, tuple[Any, ...] | None]:
        """Append parameterized epoch-second predicates to SQL query."""
        if oldest_epoch is None and latest_epoch is None:
            return query, None

        clauses: list[str] = []
        params: list[Any] = []
        if oldest_epoch is not None:
            clauses.append(f'{time_column} >= %s')
            params.append(oldest_epoch)
        if latest_epoch is not None:
            clauses.append(f'{time_column} <= %s')
            params.append(latest_epoch)

        base_query = query.strip().rstrip(';')
        return f'{base_query} WHERE {" AND ".join(clauses)}', tuple(params)

    def messages_query(self) -> tuple[str, tuple[Any, ...] | None]:
        columns = self._config.columns.messages
        query = (
            f'SELECT {columns.conversation_id}, {columns.sender_id}, '
            f'{columns.created_at} FROM {self._config.tables.messages}'
        )
        return self._with_time_bounds(
            query,
            columns.created_at,
            oldest_epoch=None,
            latest_epoch=self._config.period.until_epoch,
        )

    def managers_query(self) -> str:
        columns = self._config.columns.managers
        return (
            f'SELECT {columns.manager_id}, {columns.manager_name}, '
            f'{columns.supervisor_id} FROM {self._config.tables.managers}'
        )

    def supervisors_query(self) -> str:
        columns = self._config.columns.supervisors
        return (
            f'SELECT {columns.supervisor_id}, {columns.supervisor_name} '
            f'FROM {self._config.tables.supervisors}'
        )

    def load(self) -> SourceFrames:
        config = self._config
        message_columns = config.columns.messages

        query, params = self.messages_query()
        messages = self._connection.fetch_dataframe_chunked(
            query,
            params,
            chunk_size=config.chunk_size,
            timeout_seconds=config.timeout_seconds,
            columns=[
                message_columns.conversation_id,
                message_columns.sender_id,
                message_columns.created_at,
            ],
        )
        managers = self._connection.fetch_dataframe(
            self.managers_query(),
            timeout_seconds=config.timeout_seconds,
            columns=list(config.columns.managers.model_dump().values()),
        )
        supervisors = self._connection.fetch_dataframe(
            self.supervisors_query(),
            timeout_seconds=config.timeout_seconds,
            columns=list(config.columns.supervisors.model_dump().values()),
        )

        logger.info(
            f'Loaded {len(messages)} messages, {len(managers)} managers and '
            f'{len(supervisors)} supervisors from {self.source_key}'
        )
        return SourceFrames(
            messages=messages, managers=managers, supervisors=supervisors
        )
