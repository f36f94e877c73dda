"""
Deadline module for DATAPONTO.

Provides urgency classification, aggregation of projects, appointments and
goals into one deadline list, and Rich formatting for the CLI.
"""

from .urgency import Urgency, classify, days_until
from .aggregator import (
    DeadlineAggregator,
    DeadlineItem,
    DeadlineList,
    DeadlineSummary,
    FILTERS,
    SOURCE_TYPES,
)
from .formatter import DeadlineFormatter

__all__ = [
    # Urgency
    'Urgency',
    'classify',
    'days_until',
    # Aggregator
    'DeadlineAggregator',
    'DeadlineItem',
    'DeadlineList',
    'DeadlineSummary',
    'FILTERS',
    'SOURCE_TYPES',
    # Formatter
    'DeadlineFormatter',
]
