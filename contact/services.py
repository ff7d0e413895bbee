"""
Contact admin services bound to the process-wide session.
"""

from accounts.services import get_remote_data_service, get_session_manager

from .repository import SubmissionRepository
from .statistics import StatisticsAggregator


def get_submission_repository() -> SubmissionRepository:
    return SubmissionRepository(get_remote_data_service(), get_session_manager())


def get_statistics_aggregator() -> StatisticsAggregator:
    return StatisticsAggregator(get_remote_data_service(), get_session_manager())
