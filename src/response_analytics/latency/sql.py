"""
In-database variant of the response latency report.

`build_manager_latency_query` renders the whole pipeline as one PostgreSQL
statement (a chain of CTEs, one per stage) so the report can be computed where
the data lives. Table and column names come from `PipelineConfig`, which only
accepts plain (optionally schema-qualified) identifiers; every value is bound
as a named parameter.
"""

from __future__ import annotations

from typing import Any, Dict, Tuple

from response_analytics.latency.config import PipelineConfig

_QUERY_TEMPLATE = """
WITH from_to AS (
    SELECT
        m.{msg_created} AS created_at,
        m.{msg_sender} AS sender_id,
        to_timestamp(m.{msg_created}) AT TIME ZONE %(timezone)s AS sent_at,
        lag(m.{msg_sender}) OVER w AS received_from,
        lag(to_timestamp(m.{msg_created}) AT TIME ZONE %(timezone)s) OVER w AS received_at
    FROM {messages_table} m
    WINDOW w AS (PARTITION BY m.{msg_conversation} ORDER BY m.{msg_created})
),
answers_to_clients AS (
    SELECT sender_id, sent_at, received_at
    FROM from_to
    WHERE received_from != sender_id
      AND sender_id != %(client_sender_id)s::bigint{period_filter}
),
corrected_night_dates AS (
    SELECT
        sender_id,
        CASE
            WHEN sent_at::time > %(window_start)s::time
             AND sent_at::time < %(window_end)s::time
                THEN sent_at::date + %(window_end)s::time
            ELSE sent_at
        END AS sent_at,
        CASE
            WHEN received_at::time > %(window_start)s::time
             AND received_at::time < %(window_end)s::time
                THEN received_at::date + %(window_end)s::time
            ELSE received_at
        END AS received_at
    FROM answers_to_clients
),
time_diff AS (
    SELECT
        sender_id,
        CASE
            WHEN received_at::date = sent_at::date
                THEN extract(epoch FROM sent_at - received_at) / 60
            ELSE extract(
                epoch FROM (%(day_end)s::time - received_at::time)
                    + (sent_at::time - %(window_end)s::time)
            ) / 60
        END AS minutes_diff
    FROM corrected_night_dates
),
final_table AS (
    SELECT
        sender_id,
        round(avg(minutes_diff)::numeric, %(decimals)s::int) AS avg_minutes
    FROM time_diff
    GROUP BY sender_id
)
SELECT
    s.{sup_name} AS supervisor_name,
    mg.{mgr_name} AS manager_name,
    f.avg_minutes::double precision AS avg_minutes
FROM final_table f
JOIN {managers_table} mg
  ON mg.{mgr_id}::bigint = f.sender_id
JOIN {supervisors_table} s
  ON s.{sup_id}::bigint = mg.{mgr_supervisor}::bigint
ORDER BY f.avg_minutes
"""


def build_manager_latency_query(
    config: PipelineConfig,
) -> Tuple[str, Dict[str, Any]]:
    """Return `(query, params)` computing the report inside PostgreSQL.

    The result has the columns `supervisor_name`, `manager_name` and
    `avg_minutes`. Non-numeric reference ids fail inside the database with a
    cast error, which the caller receives unchanged.
    """
    tables = config.tables
    columns = config.columns

    params: Dict[str, Any] = {
        'timezone': config.timezone,
        'client_sender_id': config.client_sender_id,
        'window_start': config.window.start,
        'window_end': config.window.end,
        'day_end': config.window.day_end,
        'decimals': config.decimals,
    }

    period_clauses = []
    if config.period.since_epoch is not None:
        period_clauses.append('created_at >= %(since)s')
        params['since'] = config.period.since_epoch
    if config.period.until_epoch is not None:
        period_clauses.append('created_at <= %(until)s')
        params['until'] = config.period.until_epoch
    period_filter = ''.join(f'\n      AND {clause}' for clause in period_clauses)

    query = _QUERY_TEMPLATE.format(
        messages_table=tables.messages,
        managers_table=tables.managers,
        supervisors_table=tables.supervisors,
        msg_conversation=columns.messages.conversation_id,
        msg_sender=columns.messages.sender_id,
        msg_created=columns.messages.created_at,
        mgr_id=columns.managers.manager_id,
        mgr_name=columns.managers.manager_name,
        mgr_supervisor=columns.managers.supervisor_id,
        sup_id=columns.supervisors.supervisor_id,
        sup_name=columns.supervisors.supervisor_name,
        period_filter=period_filter,
    )
    return query.strip(), params
