"""
Manager Response Latency Pipeline

Computes the average time managers take to answer in deal conversations:
1. Ingestion (source columns -> canonical frames, wall-clock timestamps)
2. Linking each message to the previous one in its conversation
3. Keeping manager replies to someone else
4. Night-window correction and latency in minutes
5. Per-manager averages joined to manager/supervisor names
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from response_analytics.latency.config import PipelineConfig
from response_analytics.latency.schema import (
    MANAGER_ID,
    REPORT_COLUMNS,
    ManagerLatency,
    prepare_managers,
    prepare_messages,
    prepare_supervisors,
    report_records,
)
from response_analytics.latency.stages import (
    aggregate_manager_averages,
    compute_latencies,
    filter_client_replies,
    join_references,
    link_preceding_messages,
    normalize_night_window,
)

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Every intermediate frame of one run, plus the final report."""

    linked: pd.DataFrame = field(default_factory=pd.DataFrame)
    replies: pd.DataFrame = field(default_factory=pd.DataFrame)
    normalized: pd.DataFrame = field(default_factory=pd.DataFrame)
    latencies: pd.DataFrame = field(default_factory=pd.DataFrame)
    averages: pd.DataFrame = field(default_factory=pd.DataFrame)
    report_detail: pd.DataFrame = field(default_factory=pd.DataFrame)
    report: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def message_count(self) -> int:
        return len(self.linked)

    @property
    def reply_count(self) -> int:
        return len(self.replies)

    @property
    def manager_count(self) -> int:
        return len(self.averages)

    @property
    def unresolved_manager_count(self) -> int:
        """Managers with an average but no manager/supervisor reference."""
        if self.averages.empty:
            return 0
        resolved = self.averages[MANAGER_ID].isin(self.report_detail[MANAGER_ID])
        return int((~resolved).sum())

    def stage_counts(self) -> Dict[str, int]:
        return {
            'messages': self.message_count,
            'replies': self.reply_count,
            'managers': self.manager_count,
            'report_rows': len(self.report),
        }

    def records(self) -> List[ManagerLatency]:
        return report_records(self.report)


class ResponseLatencyPipeline:
    """
    In-process (pandas) implementation of the manager response latency report.

    Example:
        pipeline = ResponseLatencyPipeline(PipelineConfig(timezone='Europe/Moscow'))
        result = pipeline.run(messages_df, managers_df, supervisors_df)
        result.report  # supervisor_name, manager_name, avg_minutes
    """

    def __init__(self, config: Optional[PipelineConfig] = None):
        self.config = config or PipelineConfig()

    def run(
        self,
        messages: pd.DataFrame,
        managers: pd.DataFrame,
        supervisors: pd.DataFrame,
    ) -> PipelineResult:
        """
        Run all stages over raw input frames.

        Args:
            messages: Chat messages in source column names
            managers: Manager reference rows in source column names
            supervisors: Supervisor reference rows in source column names

        Returns:
            PipelineResult with every intermediate frame and the sorted report

        Raises:
            ReferenceDataError: an identifier column holds a non-integer value
            ValueError: a required source column is missing
        """
        config = self.config
        columns = config.columns

        # 1. Canonical frames; identifier coercion fails fast here.
        message_frame = prepare_messages(messages, columns.messages, config.timezone)
        manager_frame = prepare_managers(managers, columns.managers)
        supervisor_frame = prepare_supervisors(supervisors, columns.supervisors)

        # 2-5. Stages
        linked = link_preceding_messages(message_frame)
        replies = filter_client_replies(
            linked,
            client_sender_id=config.client_sender_id,
            period=config.period,
        )
        normalized = normalize_night_window(replies, config.window)
        latencies = compute_latencies(normalized, config.window)
        averages = aggregate_manager_averages(latencies, decimals=config.decimals)

        # 6. Presentation
        report_detail = join_references(
            averages, manager_frame, supervisor_frame, detailed=True
        )

        result = PipelineResult(
            linked=linked,
            replies=replies,
            normalized=normalized,
            latencies=latencies,
            averages=averages,
            report_detail=report_detail,
            report=report_detail[REPORT_COLUMNS].copy(),
        )
        logger.info(f'Response latency stage counts: {result.stage_counts()}')
        if result.unresolved_manager_count:
            logger.info(
                f'{result.unresolved_manager_count} manager(s) dropped without '
                'a matching manager or supervisor reference'
            )
        return result


def run_pipeline(
    messages: pd.DataFrame,
    managers: pd.DataFrame,
    supervisors: pd.DataFrame,
    config: Optional[PipelineConfig] = None,
) -> pd.DataFrame:
    """Convenience wrapper returning only the report frame."""
    return ResponseLatencyPipeline(config).run(messages, managers, supervisors).report
