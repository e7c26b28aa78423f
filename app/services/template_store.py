"""
Template Store
Loads the ordered list of subscription email templates
"""
from dataclasses import dataclass, field
from typing import Optional, Dict, List

from sqlalchemy.orm import Session

from app.models import EmailTemplate


@dataclass
class TemplateSpec:
    """Immutable view of an EmailTemplate row used at match time"""
    service_name: str
    sender_pattern: Optional[str] = None
    subject_pattern: Optional[str] = None
    body_patterns: Dict[str, str] = field(default_factory=dict)
    category: Optional[str] = None
    priority: int = 100
    id: Optional[int] = None

    @classmethod
    def from_model(cls, template: EmailTemplate) -> "TemplateSpec":
        return cls(
            id=template.id,
            service_name=template.service_name,
            category=template.category,
            sender_pattern=template.sender_pattern or None,
            subject_pattern=template.subject_pattern or None,
            body_patterns=dict(template.body_patterns or {}),
            priority=template.priority,
        )


class TemplateStore:
    """
    Read-only access to the active templates.

    The returned list is ordered by (priority, id). The matcher stops at the
    first template that matches, so this order decides which service an
    email is attributed to when several templates could apply.
    """

    def load(self, db: Session) -> List[TemplateSpec]:
        templates = (
            db.query(EmailTemplate)
            .filter(EmailTemplate.is_active == True)  # noqa: E712
            .order_by(EmailTemplate.priority, EmailTemplate.id)
            .all()
        )
        return [TemplateSpec.from_model(t) for t in templates]
