from __future__ import annotations

from datetime import datetime

import pandas as pd
import pytest

from response_analytics.latency.config import (
    ManagerColumns,
    MessageColumns,
    SupervisorColumns,
)
from response_analytics.latency.schema import (
    MESSAGE_COLUMNS,
    REPORT_COLUMNS,
    ManagerLatency,
    ReferenceDataError,
    normalize_identifiers,
    prepare_managers,
    prepare_messages,
    prepare_supervisors,
    report_records,
)


class TestNormalizeIdentifiers:
    def test_string_encoded_ids_become_integers(self):
        result = normalize_identifiers(pd.Series(['1', 2, ' 3 ', '+4']), 'mop_id')

        assert result.dtype == 'int64'
        assert result.tolist() == [1, 2, 3, 4]

    @pytest.mark.parametrize('bad', ['abc', '1.5', 2.5])
    def test_non_integer_values_are_rejected(self, bad):
        with pytest.raises(ReferenceDataError) as exc_info:
            normalize_identifiers(pd.Series(['1', bad]), 'mop_id')

        assert repr(bad) in str(exc_info.value)
        assert 'mop_id' in str(exc_info.value)

    @pytest.mark.parametrize('bad', ['5.0', '1e3', '', ' 12a ', '7 8', '0x1F'])
    def test_only_integer_text_is_accepted(self, bad):
        with pytest.raises(ReferenceDataError, match='mop_id'):
            normalize_identifiers(pd.Series(['1', bad]), 'mop_id')

    def test_missing_values_are_rejected_by_default(self):
        with pytest.raises(ReferenceDataError):
            normalize_identifiers(pd.Series([1, None]), 'rop_id')

    def test_missing_values_allowed_give_nullable_ints(self):
        result = normalize_identifiers(
            pd.Series(['7', None]), 'created_by', allow_missing=True
        )

        assert str(result.dtype) == 'Int64'
        assert result.iloc[0] == 7
        assert result.isna().tolist() == [False, True]

    def test_reference_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            normalize_identifiers(pd.Series(['x']), 'rop_id')


class TestPrepareMessages:
    def test_renames_and_converts_to_report_timezone(self):
        raw = pd.DataFrame(
            {'entity_id': ['10'], 'created_by': ['0'], 'created_at': [0]}
        )

        messages = prepare_messages(raw, MessageColumns(), 'Europe/Moscow')

        assert messages.columns.tolist() == MESSAGE_COLUMNS + ['sent_at']
        assert messages['conversation_id'].tolist() == ['10']
        assert messages['sent_at'].iloc[0] == datetime(1970, 1, 1, 3, 0)
        assert messages['sent_at'].dt.tz is None

    def test_custom_source_columns(self):
        raw = pd.DataFrame({'deal': [1], 'author': [5], 'ts': [60]})
        columns = MessageColumns(
            conversation_id='deal', sender_id='author', created_at='ts'
        )

        messages = prepare_messages(raw, columns, 'UTC')

        assert messages['sender_id'].tolist() == [5]
        assert messages['sent_at'].iloc[0] == datetime(1970, 1, 1, 0, 1)

    def test_missing_column_raises(self):
        raw = pd.DataFrame({'entity_id': [1], 'created_at': [0]})

        with pytest.raises(ValueError, match='Missing message columns'):
            prepare_messages(raw, MessageColumns(), 'UTC')

    def test_missing_sender_is_kept(self):
        raw = pd.DataFrame(
            {'entity_id': [1, 1], 'created_by': [0, None], 'created_at': [0, 60]}
        )

        messages = prepare_messages(raw, MessageColumns(), 'UTC')

        assert messages['sender_id'].isna().tolist() == [False, True]

    def test_missing_timestamp_is_rejected(self):
        raw = pd.DataFrame(
            {'entity_id': [1], 'created_by': [0], 'created_at': [None]}
        )

        with pytest.raises(ReferenceDataError, match='created_at'):
            prepare_messages(raw, MessageColumns(), 'UTC')

    def test_empty_frame_without_columns(self):
        messages = prepare_messages(pd.DataFrame(), MessageColumns(), 'UTC')

        assert messages.empty
        assert 'sent_at' in messages.columns


def test_prepare_references_coerce_ids(managers_df, supervisors_df):
    managers = prepare_managers(managers_df, ManagerColumns())
    supervisors = prepare_supervisors(supervisors_df, SupervisorColumns())

    assert managers.columns.tolist() == ['manager_id', 'manager_name', 'supervisor_id']
    assert managers['manager_id'].tolist() == [5, 6, 9]
    assert managers['supervisor_id'].tolist() == [1, 2, 1]
    assert supervisors.columns.tolist() == ['supervisor_id', 'supervisor_name']


def test_prepare_managers_rejects_bad_manager_id(managers_df):
    managers_df.loc[1, 'mop_id'] = 'six'

    with pytest.raises(ReferenceDataError, match="'six'"):
        prepare_managers(managers_df, ManagerColumns())


def test_report_records():
    report = pd.DataFrame(
        [['Boss Two', 'Mgr Six', 0.0], ['Boss One', 'Mgr Five', 97.7]],
        columns=REPORT_COLUMNS,
    )

    records = report_records(report)

    assert records == [
        ManagerLatency(
            supervisor_name='Boss Two', manager_name='Mgr Six', avg_minutes=0.0
        ),
        ManagerLatency(
            supervisor_name='Boss One', manager_name='Mgr Five', avg_minutes=97.7
        ),
    ]
