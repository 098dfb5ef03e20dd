from response_analytics.shared.database.postgres import (
    DatabaseSettings,
    PostgresConnection,
    get_database_settings,
    reset_database_settings_cache,
)

__all__ = [
    'DatabaseSettings',
    'PostgresConnection',
    'get_database_settings',
    'reset_database_settings_cache',
]
