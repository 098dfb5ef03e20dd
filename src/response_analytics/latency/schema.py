"""
Canonical frames and records for the response latency report.

Source tables arrive with their own column names (see
`response_analytics.latency.config.SourceColumns`). The `prepare_*` helpers
rename them to the canonical names below, coerce identifiers to integers and
convert epoch seconds to report-timezone wall-clock time. Everything
downstream only sees canonical frames.
"""

from __future__ import annotations

import re
from typing import Iterable, List

import pandas as pd
from pydantic import BaseModel, Field

from response_analytics.latency.config import (
    ManagerColumns,
    MessageColumns,
    SupervisorColumns,
)

# Message
CONVERSATION_ID = 'conversation_id'
SENDER_ID = 'sender_id'
CREATED_AT = 'created_at'
SENT_AT = 'sent_at'

# LinkedMessage
RECEIVED_FROM = 'received_from'
RECEIVED_AT = 'received_at'

# LatencyRecord / ManagerAverage
SECONDS = 'seconds'
MINUTES = 'minutes'
MANAGER_ID = 'manager_id'
AVG_MINUTES = 'avg_minutes'
REPLY_COUNT = 'reply_count'

# References
MANAGER_NAME = 'manager_name'
SUPERVISOR_ID = 'supervisor_id'
SUPERVISOR_NAME = 'supervisor_name'

MESSAGE_COLUMNS = [CONVERSATION_ID, SENDER_ID, CREATED_AT]
MANAGER_COLUMNS = [MANAGER_ID, MANAGER_NAME, SUPERVISOR_ID]
SUPERVISOR_COLUMNS = [SUPERVISOR_ID, SUPERVISOR_NAME]
REPORT_COLUMNS = [SUPERVISOR_NAME, MANAGER_NAME, AVG_MINUTES]

_INTEGER_TEXT = re.compile(r'[+-]?\d+')


class ReferenceDataError(ValueError):
    """Raised when an identifier column holds a non-integer value."""

    pass


class ManagerLatency(BaseModel):
    """One row of the final report."""

    supervisor_name: str = Field(..., description='Display name of the supervisor')
    manager_name: str = Field(..., description='Display name of the manager')
    avg_minutes: float = Field(
        ..., description='Mean response time in minutes, rounded'
    )


def require_columns(df: pd.DataFrame, columns: Iterable[str], label: str) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise ValueError(f'Missing {label} columns: {missing}')


def normalize_identifiers(
    series: pd.Series, label: str, allow_missing: bool = False
) -> pd.Series:
    """Coerce an identifier column (possibly string-encoded) to integers.

    Strings must be integer text, as accepted by a PostgreSQL `::bigint` cast,
    so `'5.0'` and `'1e3'` are rejected. Numeric values must be integral.
    Missing values are rejected too unless `allow_missing` is set, in which
    case the result is nullable `Int64`. Raises ReferenceDataError naming the
    first offending value.
    """
    dtype = 'Int64' if allow_missing else 'int64'
    if series.empty:
        return series.astype(dtype)

    stripped = series.map(lambda v: v.strip() if isinstance(v, str) else v)
    missing = stripped.isna()
    numeric = pd.to_numeric(stripped, errors='coerce')
    not_integer_text = stripped.map(
        lambda v: isinstance(v, str) and _INTEGER_TEXT.fullmatch(v) is None
    ).astype(bool)
    invalid = (
        (numeric.isna() & ~missing)
        | (numeric.notna() & (numeric % 1 != 0))
        | not_integer_text
    )
    if not allow_missing:
        invalid |= missing
    if invalid.any():
        bad = series[invalid].iloc[0]
        raise ReferenceDataError(
            f'{label} must be an integer identifier, got {bad!r} '
            f'({int(invalid.sum())} invalid value(s))'
        )
    if allow_missing:
        return numeric.astype('Int64')
    return numeric.astype('int64')


def to_wall_clock(epoch_seconds: pd.Series, tz: str) -> pd.Series:
    """Epoch seconds -> naive wall-clock datetimes in `tz`."""
    instants = pd.to_datetime(epoch_seconds, unit='s', utc=True)
    return instants.dt.tz_convert(tz).dt.tz_localize(None)


def prepare_messages(
    raw: pd.DataFrame, columns: MessageColumns, tz: str
) -> pd.DataFrame:
    """Rename message columns and add the wall-clock `sent_at` column."""
    source = [columns.conversation_id, columns.sender_id, columns.created_at]
    if raw.empty and not len(raw.columns):
        raw = pd.DataFrame(columns=source)
    require_columns(raw, source, 'message')

    messages = raw[source].rename(
        columns={
            columns.conversation_id: CONVERSATION_ID,
            columns.sender_id: SENDER_ID,
            columns.created_at: CREATED_AT,
        }
    )
    # A message without a sender never qualifies as a reply, so it is kept as NA.
    messages[SENDER_ID] = normalize_identifiers(
        messages[SENDER_ID], 'sender_id', allow_missing=True
    )
    messages[CREATED_AT] = normalize_identifiers(messages[CREATED_AT], 'created_at')
    messages[SENT_AT] = to_wall_clock(messages[CREATED_AT], tz)
    return messages.reset_index(drop=True)


def prepare_managers(raw: pd.DataFrame, columns: ManagerColumns) -> pd.DataFrame:
    source = [columns.manager_id, columns.manager_name, columns.supervisor_id]
    if raw.empty and not len(raw.columns):
        raw = pd.DataFrame(columns=source)
    require_columns(raw, source, 'manager')

    managers = raw[source].rename(
        columns={
            columns.manager_id: MANAGER_ID,
            columns.manager_name: MANAGER_NAME,
            columns.supervisor_id: SUPERVISOR_ID,
        }
    )
    managers[MANAGER_ID] = normalize_identifiers(managers[MANAGER_ID], 'manager_id')
    managers[SUPERVISOR_ID] = normalize_identifiers(
        managers[SUPERVISOR_ID], 'manager supervisor_id'
    )
    return managers.reset_index(drop=True)


def prepare_supervisors(
    raw: pd.DataFrame, columns: SupervisorColumns
) -> pd.DataFrame:
    source = [columns.supervisor_id, columns.supervisor_name]
    if raw.empty and not len(raw.columns):
        raw = pd.DataFrame(columns=source)
    require_columns(raw, source, 'supervisor')

    supervisors = raw[source].rename(
        columns={
            columns.supervisor_id: SUPERVISOR_ID,
            columns.supervisor_name: SUPERVISOR_NAME,
        }
    )
    supervisors[SUPERVISOR_ID] = normalize_identifiers(
        supervisors[SUPERVISOR_ID], 'supervisor_id'
    )
    return supervisors.reset_index(drop=True)


def report_records(report: pd.DataFrame) -> List[ManagerLatency]:
    return [ManagerLatency(**row) for row in report[REPORT_COLUMNS].to_dict('records')]
