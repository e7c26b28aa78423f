"""
Chat action normalization for the spend coach
"""
from typing import Any, List

ACTION_ALIASES = {
    "create": "create",
    "add": "create",
    "new": "create",
    "start": "create",
    "subscribe": "create",
    "sign up": "create",
    "sign-up": "create",
    "signup": "create",
    "update": "update",
    "edit": "update",
    "change": "update",
    "modify": "update",
    "adjust": "update",
    "delete": "delete",
    "remove": "delete",
    "cancel": "delete",
    "stop": "delete",
    "terminate": "delete",
    "end": "delete",
    "unsubscribe": "delete",
}


def normalize_chat_actions(actions: Any) -> List[str]:
    """
    Map free-form action words to create/update/delete.
    Unknown and non-string entries are dropped; order is first-seen.
    """
    if not isinstance(actions, list):
        return []

    normalized: List[str] = []
    for action in actions:
        if not isinstance(action, str):
            continue
        canonical = ACTION_ALIASES.get(action.strip().lower())
        if canonical and canonical not in normalized:
            normalized.append(canonical)
    return normalized
