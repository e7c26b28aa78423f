"""
Database Models
"""
from app.models.user import User, AuthToken, UserSettings
from app.models.subscription import Subscription, BillingCycle, SubscriptionSource
from app.models.email_connection import EmailConnection
from app.models.email_template import EmailTemplate
from app.models.import_log import EmailImportLog, ImportStatus

__all__ = [
    "User",
    "AuthToken",
    "UserSettings",
    "Subscription",
    "BillingCycle",
    "SubscriptionSource",
    "EmailConnection",
    "EmailTemplate",
    "EmailImportLog",
    "ImportStatus",
]
