"""
Stages of the response latency pipeline.

Each stage is a pure function from one canonical DataFrame to the next:

1. link_preceding_messages   - previous sender/time per conversation
2. filter_client_replies     - manager turns answering someone else
3. normalize_night_window    - off-hours timestamps moved to start of business
4. compute_latencies         - minutes between message and reply
5. aggregate_manager_averages - rounded mean per manager
6. join_references           - manager and supervisor names, sorted output
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

import pandas as pd

from response_analytics.latency.config import OffHoursWindow, ReportPeriod
from response_analytics.latency.schema import (
    AVG_MINUTES,
    CONVERSATION_ID,
    CREATED_AT,
    MANAGER_ID,
    MINUTES,
    RECEIVED_AT,
    RECEIVED_FROM,
    REPLY_COUNT,
    REPORT_COLUMNS,
    SECONDS,
    SENDER_ID,
    SENT_AT,
    SUPERVISOR_ID,
    require_columns,
)
from response_analytics.latency.window import (
    SECONDS_PER_MINUTE,
    response_latency_seconds_series,
    shift_off_hours_series,
)

NORMALIZED_COLUMNS = [CONVERSATION_ID, SENDER_ID, SENT_AT, RECEIVED_AT]
LATENCY_COLUMNS = [CONVERSATION_ID, SENDER_ID, SECONDS, MINUTES]


def link_preceding_messages(messages: pd.DataFrame) -> pd.DataFrame:
    """Attach the sender and time of the previous message in each conversation.

    Messages are ordered by `created_at` within a conversation. The sort is
    stable, so messages sharing an instant keep their input order. The first
    message of a conversation gets NA/NaT. No rows are dropped.
    """
    require_columns(
        messages, [CONVERSATION_ID, SENDER_ID, CREATED_AT, SENT_AT], 'message'
    )

    ordered = messages.sort_values([CONVERSATION_ID, CREATED_AT], kind='stable').copy()
    grouped = ordered.groupby(CONVERSATION_ID, sort=False, dropna=False)
    ordered[RECEIVED_FROM] = grouped[SENDER_ID].shift(1)
    ordered[RECEIVED_AT] = pd.to_datetime(grouped[SENT_AT].shift(1))
    return ordered.reset_index(drop=True)


def filter_client_replies(
    linked: pd.DataFrame,
    client_sender_id: int = 0,
    period: Optional[ReportPeriod] = None,
) -> pd.DataFrame:
    """Keep manager messages that follow a message from a different sender.

    A message without a predecessor never qualifies. With a `period`, only
    replies created inside the inclusive bounds are kept.
    """
    sender = linked[SENDER_ID]
    received_from = linked[RECEIVED_FROM]

    # NA comparisons resolve to "not a reply".
    turn_change = (received_from != sender).fillna(False).astype(bool)
    is_manager = (sender != client_sender_id).fillna(False).astype(bool)
    keep = received_from.notna() & sender.notna() & turn_change & is_manager

    if period is not None:
        if period.since_epoch is not None:
            keep &= linked[CREATED_AT] >= period.since_epoch
        if period.until_epoch is not None:
            keep &= linked[CREATED_AT] <= period.until_epoch

    return linked[keep].reset_index(drop=True)


def normalize_night_window(
    replies: pd.DataFrame, window: OffHoursWindow
) -> pd.DataFrame:
    normalized = replies[NORMALIZED_COLUMNS].copy()
    normalized[SENT_AT] = shift_off_hours_series(normalized[SENT_AT], window)
    normalized[RECEIVED_AT] = shift_off_hours_series(normalized[RECEIVED_AT], window)
    return normalized


def compute_latencies(normalized: pd.DataFrame, window: OffHoursWindow) -> pd.DataFrame:
    """Latency per reply, in whole seconds and in minutes."""
    latencies = normalized[[CONVERSATION_ID, SENDER_ID]].copy()
    latencies[SECONDS] = response_latency_seconds_series(
        normalized[RECEIVED_AT], normalized[SENT_AT], window
    ).astype('float64')
    latencies[MINUTES] = latencies[SECONDS] / SECONDS_PER_MINUTE
    return latencies[LATENCY_COLUMNS]


def round_half_away_from_zero(
    value: Union[Decimal, float], decimals: int = 1
) -> float:
    """Round like PostgreSQL `round(numeric, int)`.

    A float is read through its shortest decimal representation, so 20.05
    rounds to 20.1 rather than following its binary approximation down.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    quantum = Decimal(1).scaleb(-decimals)
    return float(value.quantize(quantum, rounding=ROUND_HALF_UP))


def aggregate_manager_averages(
    latencies: pd.DataFrame, decimals: int = 1
) -> pd.DataFrame:
    """Mean latency per sender in minutes, rounded half away from zero.

    The mean is taken in exact decimal arithmetic over the summed seconds, so
    a half-way mean such as 3 s (0.05 min) rounds up as `numeric` does.
    """
    if latencies.empty:
        return pd.DataFrame(
            {
                MANAGER_ID: pd.Series(dtype='int64'),
                AVG_MINUTES: pd.Series(dtype='float64'),
                REPLY_COUNT: pd.Series(dtype='int64'),
            }
        )

    stats = latencies.groupby(SENDER_ID)[SECONDS].agg(['sum', 'size'])
    averages = pd.DataFrame(
        {
            MANAGER_ID: stats.index.astype('int64'),
            AVG_MINUTES: [
                round_half_away_from_zero(
                    Decimal(float(total)) / (Decimal(int(count)) * 60), decimals
                )
                for total, count in zip(stats['sum'], stats['size'])
            ],
            REPLY_COUNT: stats['size'].astype('int64').to_numpy(),
        }
    )
    return averages.sort_values(AVG_MINUTES, kind='stable').reset_index(drop=True)


def join_references(
    averages: pd.DataFrame,
    managers: pd.DataFrame,
    supervisors: pd.DataFrame,
    detailed: bool = False,
) -> pd.DataFrame:
    """Resolve manager and supervisor names; unmatched rows are dropped.

    Output is sorted ascending by `avg_minutes`. With `detailed`, the ids and
    reply counts are kept after the report columns.
    """
    joined = averages.merge(managers, on=MANAGER_ID, how='inner').merge(
        supervisors, on=SUPERVISOR_ID, how='inner'
    )
    joined = joined.sort_values(AVG_MINUTES, kind='stable').reset_index(drop=True)
    if detailed:
        return joined[REPORT_COLUMNS + [MANAGER_ID, SUPERVISOR_ID, REPLY_COUNT]]
    return joined[REPORT_COLUMNS]
