"""
Services
"""
from app.services.email_parser import EmailParser, SubscriptionDraft
from app.services.email_import import ImportOrchestrator
from app.services.agent_service import LangGraphAgentService

__all__ = [
    "EmailParser",
    "SubscriptionDraft",
    "ImportOrchestrator",
    "LangGraphAgentService",
]
