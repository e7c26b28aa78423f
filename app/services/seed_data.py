"""
Seed default data - subscription email templates
"""
import logging

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.models import EmailTemplate

logger = logging.getLogger(__name__)

# Shared body patterns. Group 1 holds the value.
AMOUNT = r"(?:total|amount|price|charged|you paid|payment of)[:\s]*([$€£¥]\s?\d[\d,]*(?:\.\d{2})?)"
DATE = (
    r"(?:next (?:billing|payment|renewal) date|renews on|next charge(?: on)?|billing date)[:\s]*"
    r"([A-Za-z]+\.? \d{1,2},? \d{4}|\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4}|\d{1,2} [A-Za-z]+ \d{4})"
)
CYCLE = r"\b(per (?:day|week|month|year)|(?:dai|week|month|year)ly|annual(?:ly)?|every (?:day|week|month|year))\b"

COMMON_PATTERNS = {"amount": AMOUNT, "date": DATE, "cycle": CYCLE}

# Default templates, in priority order (first match wins)
DEFAULT_TEMPLATES = [
    {
        "service_name": "Netflix",
        "category": "Entertainment",
        "sender_pattern": r"netflix\.com",
        "subject_pattern": r"(receipt|payment|membership|billing|your account)",
    },
    {
        "service_name": "Spotify",
        "category": "Music",
        "sender_pattern": r"spotify\.com",
        "subject_pattern": r"(receipt|payment|premium|subscription)",
    },
    {
        "service_name": "YouTube Premium",
        "category": "Entertainment",
        "sender_pattern": r"(youtube\.com|google\.com)",
        "subject_pattern": r"youtube (premium|music)",
    },
    {
        "service_name": "Amazon Prime",
        "category": "Shopping",
        "sender_pattern": r"amazon\.(com|co\.uk|de|fr|ca)",
        "subject_pattern": r"prime",
    },
    {
        "service_name": "Disney+",
        "category": "Entertainment",
        "sender_pattern": r"disney(plus)?\.com",
        "subject_pattern": r"(receipt|payment|subscription|billing)",
    },
    {
        "service_name": "Hulu",
        "category": "Entertainment",
        "sender_pattern": r"hulu\.com",
        "subject_pattern": r"(receipt|payment|subscription|billing)",
    },
    {
        "service_name": "Apple",
        "category": "Entertainment",
        "sender_pattern": r"apple\.com",
        "subject_pattern": r"(receipt|subscription|renew)",
    },
    {
        "service_name": "Adobe Creative Cloud",
        "category": "Productivity",
        "sender_pattern": r"adobe\.com",
        "subject_pattern": r"(invoice|receipt|payment|plan)",
    },
    {
        "service_name": "Microsoft 365",
        "category": "Productivity",
        "sender_pattern": r"microsoft\.com",
        "subject_pattern": r"(microsoft 365|office 365|subscription|renew)",
    },
    {
        "service_name": "Dropbox",
        "category": "Productivity",
        "sender_pattern": r"dropbox\.com",
        "subject_pattern": r"(receipt|payment|invoice|renew)",
    },
]


def seed_default_templates(db: Session = None) -> int:
    """
    Insert the default templates when the table is empty.
    Returns the number of templates created.
    """
    own_session = db is None
    db = db or SessionLocal()
    try:
        if db.query(EmailTemplate).count() > 0:
            return 0

        for index, template in enumerate(DEFAULT_TEMPLATES):
            db.add(EmailTemplate(
                service_name=template["service_name"],
                category=template.get("category"),
                sender_pattern=template.get("sender_pattern"),
                subject_pattern=template.get("subject_pattern"),
                body_patterns=dict(template.get("body_patterns", COMMON_PATTERNS)),
                priority=(index + 1) * 10,
                is_active=True,
            ))

        db.commit()
        logger.info("Seeded %d default email templates", len(DEFAULT_TEMPLATES))
        return len(DEFAULT_TEMPLATES)
    finally:
        if own_session:
            db.close()
