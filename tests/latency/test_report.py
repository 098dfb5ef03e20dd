from __future__ import annotations

import pandas as pd
import pytest

from response_analytics.latency import report as report_module
from response_analytics.latency.config import PipelineConfig
from response_analytics.latency.report import run_report
from response_analytics.latency.schema import REPORT_COLUMNS
from response_analytics.latency.sources import DataFrameSource

EXPECTED = [
    ['Boss Two', 'Mgr Six', 0.0],
    ['Boss One', 'Mgr Five', 97.7],
]


def test_pandas_engine_reads_tables_through_connection(fake_connection):
    report = run_report(PipelineConfig(), connection=fake_connection)

    assert report.values.tolist() == EXPECTED
    assert fake_connection.calls[0][0] == 'fetch_dataframe_chunked'
    assert not fake_connection.closed


def test_database_engine_runs_single_query(make_connection):
    database_rows = pd.DataFrame(EXPECTED, columns=REPORT_COLUMNS)
    connection = make_connection({'final_table': database_rows})

    report = run_report(PipelineConfig(engine='database'), connection=connection)

    assert report.values.tolist() == EXPECTED
    assert len(connection.calls) == 1
    method, query, params, extra = connection.calls[0]
    assert method == 'fetch_dataframe'
    assert query.startswith('WITH from_to AS (')
    assert params['timezone'] == 'UTC'
    assert extra == {'columns': REPORT_COLUMNS}


def test_database_engine_empty_result_keeps_columns(make_connection):
    connection = make_connection()

    report = run_report(PipelineConfig(engine='database'), connection=connection)

    assert report.empty
    assert report.columns.tolist() == REPORT_COLUMNS


def test_in_memory_source_never_opens_a_connection(
    monkeypatch, deal_messages, managers_df, supervisors_df
):
    def _fail(*args, **kwargs):
        raise AssertionError('PostgresConnection should not be opened')

    monkeypatch.setattr(report_module, 'PostgresConnection', _fail)
    source = DataFrameSource(deal_messages, managers_df, supervisors_df)

    report = run_report(PipelineConfig(), source=source)

    assert report.values.tolist() == EXPECTED


def test_owned_connection_is_closed(monkeypatch, fake_connection):
    monkeypatch.setattr(report_module, 'PostgresConnection', lambda: fake_connection)

    report = run_report(PipelineConfig())

    assert report.values.tolist() == EXPECTED
    assert fake_connection.closed


def test_owned_connection_is_closed_on_error(monkeypatch, make_connection):
    def _explode(*args, **kwargs):
        raise RuntimeError('boom')

    broken = make_connection()
    broken.fetch_dataframe = _explode
    monkeypatch.setattr(report_module, 'PostgresConnection', lambda: broken)

    with pytest.raises(RuntimeError, match='boom'):
        run_report(PipelineConfig(engine='database'))

    assert broken.closed


def test_database_engine_rejects_a_source(
    make_connection, deal_messages, managers_df, supervisors_df
):
    connection = make_connection()
    source = DataFrameSource(deal_messages, managers_df, supervisors_df)

    with pytest.raises(ValueError, match='pandas engine'):
        run_report(
            PipelineConfig(engine='database'), connection=connection, source=source
        )

    assert connection.calls == []
