import logging
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union
from uuid import uuid4

import pandas as pd
import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from pydantic import Field

from response_analytics.shared.settings import RepoSettingsBase, build_settings_config

logger = logging.getLogger(__name__)


class DatabaseSettings(RepoSettingsBase):
    model_config = build_settings_config(from_path=Path(__file__))

    database_url: str | None = Field(
        default=None,
        description='Postgres connection URL.',
    )
    db_pool_min_size: int = Field(
        default=0,
        description='Minimum number of connections in the pool.',
    )
    db_pool_max_size: int = Field(
        default=5,
        description='Maximum number of connections in the pool.',
    )
    db_connect_timeout_seconds: int = Field(
        default=10,
        description='Connection timeout in seconds.',
    )
    db_statement_timeout_ms: int = Field(
        default=300000,
        description='Statement timeout in milliseconds. 0 disables timeout.',
    )
    db_application_name: str | None = Field(
        default='response-analytics',
        description='Optional Postgres application_name.',
    )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings()


def reset_database_settings_cache() -> None:
    get_database_settings.cache_clear()


def _set_statement_timeout(conn: psycopg.Connection, statement_timeout_ms: int) -> None:
    with conn.cursor() as cur:
        cur.execute(
            sql.SQL('SET statement_timeout = {}').format(
                sql.Literal(statement_timeout_ms)
            )
        )


class PostgresConnection:
    """
    Synchronous, pooled read access to the PostgreSQL database that holds the
    chat messages and the manager/supervisor reference tables.
    """

    def __init__(
        self,
        connection_string: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the connection pool.
        Args:
            connection_string: Postgres connection URL. If None, uses DATABASE_URL.
            timeout: Optional default statement timeout in seconds for every
                query issued through this instance. 0 disables the timeout.
        """
        self._settings = get_database_settings()
        self.dsn = connection_string or self._settings.database_url
        if not self.dsn:
            raise ValueError(
                'DATABASE_URL not found in environment variables or arguments.'
            )
        if self._settings.db_pool_min_size > self._settings.db_pool_max_size:
            raise ValueError('DB_POOL_MIN_SIZE cannot exceed DB_POOL_MAX_SIZE.')
        if timeout is not None and timeout < 0:
            raise ValueError('timeout must be >= 0.')
        self.timeout = timeout

        self.pool = ConnectionPool(
            conninfo=self.dsn,
            min_size=self._settings.db_pool_min_size,
            max_size=self._settings.db_pool_max_size,
            kwargs=self._build_connection_kwargs(self._settings),
        )
        logger.info('Database connection pool initialized.')

    @staticmethod
    def _build_connection_kwargs(settings: DatabaseSettings) -> dict:
        kwargs: dict = {
            'row_factory': dict_row,
            'connect_timeout': settings.db_connect_timeout_seconds,
        }
        if settings.db_application_name:
            kwargs['application_name'] = settings.db_application_name
        return kwargs

    def _resolve_statement_timeout_ms(
        self, timeout_seconds: Optional[float] = None
    ) -> Optional[int]:
        if timeout_seconds is not None:
            if timeout_seconds < 0:
                raise ValueError('timeout_seconds must be >= 0.')
            return int(timeout_seconds * 1000)
        if self.timeout is not None:
            return int(self.timeout * 1000)
        if self._settings.db_statement_timeout_ms > 0:
            return self._settings.db_statement_timeout_ms
        return None

    def close(self):
        """Close the connection pool gracefully."""
        if self.pool:
            self.pool.close()
            logger.info('Database connection pool closed.')

    def __enter__(self) -> 'PostgresConnection':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _connection(self, timeout_seconds: Optional[float] = None):
        with self.pool.connection() as conn:
            statement_timeout_ms = self._resolve_statement_timeout_ms(timeout_seconds)
            if statement_timeout_ms is not None:
                _set_statement_timeout(conn, statement_timeout_ms)
            yield conn

    def fetch_all(
        self,
        query: str,
        params: Optional[Union[tuple, dict]] = None,
        timeout_seconds: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        try:
            with self._connection(timeout_seconds=timeout_seconds) as conn:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                    return cur.fetchall()
        except psycopg.Error as e:
            logger.error(f'Database query failed: {e}')
            raise

    def fetch_dataframe(
        self,
        query: str,
        params: Optional[Union[tuple, dict]] = None,
        timeout_seconds: Optional[float] = None,
        columns: Optional[List[str]] = None,
    ) -> pd.DataFrame:
        """Run `query` and return its rows as a DataFrame.

        `columns` fixes the frame's columns when the query yields no rows.
        """
        data = self.fetch_all(query, params, timeout_seconds=timeout_seconds)
        if not data and columns is not None:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(data)

    def fetch_chunks(
        self,
        query: str,
        params: Optional[Union[tuple, dict]] = None,
        *,
        chunk_size: int = 1000,
        timeout_seconds: Optional[float] = None,
    ) -> Iterator[List[Dict[str, Any]]]:
        if chunk_size <= 0:
            raise ValueError('chunk_size must be > 0.')
        try:
            with self._connection(timeout_seconds=timeout_seconds) as conn:
                cursor_name = f'response_chunk_{uuid4().hex}'
                with conn.cursor(name=cursor_name) as cur:
                    cur.itersize = chunk_size
                    cur.execute(query, params)
                    while True:
                        rows = cur.fetchmany(chunk_size)
                        if not rows:
                            break
                        yield rows
        except psycopg.Error as e:
            logger.error(f'Database chunked query failed: {e}')
            raise

    def fetch_dataframe_chunked(
        self,
        query: str,
        params: Optional[Union[tuple, dict]] = None,
        *,
        chunk_size: int = 1000,
        timeout_seconds: Optional[float] = None,
        columns: Optional[List[str]] = None,
    ) -> pd.DataFrame:
        """
        Fetch query results using chunked retrieval, then return one DataFrame.

        Server-side cursors keep memory flat while rows stream in; the chunks
        are concatenated once at the end.
        """
        chunks = [
            pd.DataFrame(rows)
            for rows in self.fetch_chunks(
                query,
                params,
                chunk_size=chunk_size,
                timeout_seconds=timeout_seconds,
            )
        ]
        if chunks:
            return pd.concat(chunks, ignore_index=True)
        return pd.DataFrame(columns=columns) if columns is not None else pd.DataFrame()
