from __future__ import annotations

import pandas as pd
import pytest


def epoch(value: str) -> int:
    """'YYYY-mm-dd HH:MM:SS' in UTC -> epoch seconds."""
    return int(pd.Timestamp(value, tz='UTC').timestamp())


@pytest.fixture
def make_messages():
    """Build a raw chat_messages frame from (deal, sender, utc time) tuples."""

    def _make(rows: list[tuple[object, object, str]]) -> pd.DataFrame:
        return pd.DataFrame(
            {
                'entity_id': [deal for deal, _, _ in rows],
                'created_by': [sender for _, sender, _ in rows],
                'created_at': [epoch(ts) for _, _, ts in rows],
            },
            columns=['entity_id', 'created_by', 'created_at'],
        )

    return _make


@pytest.fixture
def managers_df() -> pd.DataFrame:
    # Identifiers arrive string-encoded, as in the managers table.
    return pd.DataFrame(
        {
            'mop_id': ['5', '6', '9'],
            'name_mop': ['Mgr Five', 'Mgr Six', 'Mgr Nine'],
            'rop_id': ['1', '2', '1'],
        }
    )


@pytest.fixture
def supervisors_df() -> pd.DataFrame:
    return pd.DataFrame({'rop_id': [1, 2], 'rop_name': ['Boss One', 'Boss Two']})


@pytest.fixture
def deal_messages(make_messages) -> pd.DataFrame:
    return make_messages(
        [
            # Same-day reply: 45.5 minutes
            (100, 0, '2024-03-04 14:00:00'),
            (100, 5, '2024-03-04 14:45:30'),
            # Overnight reply: 7199 s to day end + 30 min after 09:30
            (100, 0, '2024-03-04 22:00:00'),
            (100, 5, '2024-03-05 10:00:00'),
            # Both inside the night window -> both moved to 09:30
            (200, 0, '2024-03-05 02:00:00'),
            (200, 6, '2024-03-05 03:00:00'),
            # Manager without a reference row
            (300, 0, '2024-03-04 12:00:00'),
            (300, 8, '2024-03-04 12:10:00'),
            # Manager message with no predecessor
            (400, 5, '2024-03-04 15:00:00'),
            # Client-only conversation
            (500, 0, '2024-03-04 12:00:00'),
            (500, 0, '2024-03-04 12:05:00'),
        ]
    )


class FakeConnection:
    """Stands in for PostgresConnection; answers by the table a query reads."""

    def __init__(self, tables: dict[str, pd.DataFrame] | None = None):
        self.tables = tables or {}
        self.calls: list[tuple[str, str, object, dict]] = []
        self.closed = False

    def _answer(self, query: str, columns) -> pd.DataFrame:
        for name, frame in self.tables.items():
            if f'FROM {name}' in query:
                return frame.copy()
        return pd.DataFrame(columns=columns)

    def fetch_dataframe(self, query, params=None, timeout_seconds=None, columns=None):
        self.calls.append(('fetch_dataframe', query, params, {'columns': columns}))
        return self._answer(query, columns)

    def fetch_dataframe_chunked(
        self, query, params=None, chunk_size=5000, timeout_seconds=None, columns=None
    ):
        self.calls.append(
            (
                'fetch_dataframe_chunked',
                query,
                params,
                {'chunk_size': chunk_size, 'columns': columns},
            )
        )
        return self._answer(query, columns)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_connection(deal_messages, managers_df, supervisors_df) -> FakeConnection:
    return FakeConnection(
        {
            'chat_messages': deal_messages,
            'managers': managers_df,
            'rops': supervisors_df,
        }
    )


@pytest.fixture
def make_connection():
    return FakeConnection
