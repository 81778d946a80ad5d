"""
Dashboard conversations: reply selection and the per-visit chat session.
"""

from .responses import DEFAULT_RESPONSES, PATTERNS, ResponseEngine, ResponsePattern
from .session import DASHBOARD_VARIANTS, DashboardConversationSession, DashboardVariant

__all__ = [
    "DASHBOARD_VARIANTS",
    "DEFAULT_RESPONSES",
    "DashboardConversationSession",
    "DashboardVariant",
    "PATTERNS",
    "ResponseEngine",
    "ResponsePattern",
]
