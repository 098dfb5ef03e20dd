"""
Report configuration for the manager response latency report.

Configuration lives in YAML (see `config/response_latency.yaml`) and is
validated into `PipelineConfig`. Defaults match the deal-chat
schema: `chat_messages`, `managers` and `rops`.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, time, timezone
from pathlib import Path
from typing import Any, Dict, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from response_analytics.shared.config import ConfigurationError, load_config

logger = logging.getLogger(__name__)

_SAFE_SQL_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def validate_identifier(value: str, qualified: bool = False) -> str:
    """Accept a bare identifier, or `schema.name` when `qualified` is set."""
    parts = value.split('.', 1) if qualified else [value]
    if not all(_SAFE_SQL_IDENTIFIER.match(part) for part in parts):
        raise ValueError(f'Invalid SQL identifier: {value!r}')
    return value


class _IdentifierModel(BaseModel):
    model_config = {'extra': 'forbid'}

    @field_validator('*')
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        return validate_identifier(value, qualified=cls is TableNames)


class TableNames(_IdentifierModel):
    messages: str = Field('chat_messages', description='Chat message table')
    managers: str = Field('managers', description='Manager reference table')
    supervisors: str = Field('rops', description='Supervisor reference table')


class MessageColumns(_IdentifierModel):
    conversation_id: str = 'entity_id'
    sender_id: str = 'created_by'
    created_at: str = 'created_at'


class ManagerColumns(_IdentifierModel):
    manager_id: str = 'mop_id'
    manager_name: str = 'name_mop'
    supervisor_id: str = 'rop_id'


class SupervisorColumns(_IdentifierModel):
    supervisor_id: str = 'rop_id'
    supervisor_name: str = 'rop_name'


class SourceColumns(BaseModel):
    model_config = {'extra': 'forbid'}

    messages: MessageColumns = Field(default_factory=MessageColumns)
    managers: ManagerColumns = Field(default_factory=ManagerColumns)
    supervisors: SupervisorColumns = Field(default_factory=SupervisorColumns)


class OffHoursWindow(BaseModel):
    """Daily non-working window excluded from response time.

    Timestamps strictly inside `(start, end)` are moved to `end`. When a reply
    lands on a later calendar day than the message it answers, the gap is
    counted as `day_end - received` plus `sent - end`.
    """

    model_config = {'extra': 'forbid', 'frozen': True}

    start: time = Field(time(0, 0, 0), description='Off-hours start (exclusive)')
    end: time = Field(time(9, 30, 0), description='Start of business (exclusive)')
    day_end: time = Field(
        time(23, 59, 59), description='Last counted instant of a day'
    )

    @model_validator(mode='after')
    def _check_order(self) -> 'OffHoursWindow':
        if not self.start < self.end <= self.day_end:
            raise ValueError('window must satisfy start < end <= day_end')
        return self


def _epoch(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


class ReportPeriod(BaseModel):
    """Inclusive bounds on the reply's own creation time.

    Naive bounds are read as UTC here. Inside `PipelineConfig` they are read
    in the report timezone instead.
    """

    model_config = {'extra': 'forbid'}

    since: Optional[datetime] = None
    until: Optional[datetime] = None

    @model_validator(mode='after')
    def _check_bounds(self) -> 'ReportPeriod':
        since, until = self.since_epoch, self.until_epoch
        if since is not None and until is not None and since > until:
            raise ValueError('period.since must not be after period.until')
        return self

    def localized(self, tz: str) -> 'ReportPeriod':
        """Attach `tz` to naive bounds, leaving aware ones as they are."""
        zone = ZoneInfo(tz)
        return self.model_copy(
            update={
                name: value.replace(tzinfo=zone)
                for name, value in (('since', self.since), ('until', self.until))
                if value is not None and value.tzinfo is None
            }
        )

    @property
    def since_epoch(self) -> Optional[int]:
        return _epoch(self.since)

    @property
    def until_epoch(self) -> Optional[int]:
        return _epoch(self.until)


class PipelineConfig(BaseModel):
    """Validated settings for one report run."""

    model_config = {'extra': 'forbid'}

    engine: Literal['pandas', 'database'] = 'pandas'
    timezone: str = Field(
        'UTC', description='IANA zone used for time of day and calendar dates'
    )
    decimals: int = Field(1, ge=0, description='Decimal places of avg_minutes')
    client_sender_id: int = Field(0, description='Sender id that marks a client')
    tables: TableNames = Field(default_factory=TableNames)
    columns: SourceColumns = Field(default_factory=SourceColumns)
    window: OffHoursWindow = Field(default_factory=OffHoursWindow)
    period: ReportPeriod = Field(default_factory=ReportPeriod)
    chunk_size: int = Field(5000, gt=0)
    timeout_seconds: Optional[float] = Field(None, ge=0)

    @field_validator('timezone')
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f'Unknown timezone: {value!r}') from e
        return value

    @model_validator(mode='after')
    def _localize_period(self) -> 'PipelineConfig':
        self.period = self.period.localized(self.timezone)
        return self


def build_pipeline_config(raw: Dict[str, Any]) -> PipelineConfig:
    try:
        return PipelineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f'Invalid response latency config: {e}') from e


def load_pipeline_config(
    path: str | Path, overrides: Dict[str, Any] | None = None
) -> PipelineConfig:
    """Load and validate a report config from YAML.

    Example:
        >>> cfg = load_pipeline_config(
        ...     'config/response_latency.yaml', overrides={'engine': 'database'}
        ... )
    """
    config = build_pipeline_config(load_config(path, overrides=overrides))
    logger.info(
        'Loaded response latency config from %s (engine=%s, timezone=%s)',
        path,
        config.engine,
        config.timezone,
    )
    return config
