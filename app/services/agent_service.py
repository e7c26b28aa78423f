"""
LangGraph Agent Service
Optional HTTP client for the email-analysis agent and the spend coach chatbot.

Every failure (not configured, timeout, non-2xx, bad JSON) returns None.
"""
import logging
from typing import Optional, Dict, Any, List

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)


class LangGraphAgentService:
    """Wraps calls to a LangGraph deployment exposing /agents/{id}/invoke"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        email_agent_id: Optional[str] = None,
        chat_agent_id: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.base_url = (settings.LANGGRAPH_API_URL if base_url is None else base_url).rstrip("/")
        self.api_key = settings.LANGGRAPH_API_KEY if api_key is None else api_key
        self.email_agent_id = settings.LANGGRAPH_EMAIL_AGENT_ID if email_agent_id is None else email_agent_id
        self.chat_agent_id = settings.LANGGRAPH_CHAT_AGENT_ID if chat_agent_id is None else chat_agent_id
        self.timeout = timeout or settings.LANGGRAPH_TIMEOUT_SECONDS

    def is_enabled(self) -> bool:
        return bool(self.base_url and self.api_key)

    def has_email_agent(self) -> bool:
        return self.is_enabled() and bool(self.email_agent_id)

    def has_chat_agent(self) -> bool:
        return self.is_enabled() and bool(self.chat_agent_id)

    def call_agent(self, agent_id: str, payload: Dict[str, Any]) -> Optional[Any]:
        """POST {"input": payload} to the agent and return the decoded JSON"""
        if not self.is_enabled():
            logger.warning("LangGraph agent requested but service is not configured")
            return None
        if not agent_id:
            logger.warning("LangGraph agent requested without an agent ID")
            return None

        try:
            response = requests.post(
                f"{self.base_url}/agents/{agent_id}/invoke",
                json={"input": payload},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.error("LangGraph agent request timed out")
            return None
        except requests.RequestException as e:
            logger.error("LangGraph agent request failed: %s", e)
            return None

        if not response.ok:
            logger.error("LangGraph agent error (%s): %s", response.status_code, response.text[:500])
            return None

        try:
            return response.json()
        except ValueError:
            logger.error("LangGraph agent returned invalid JSON")
            return None

    @staticmethod
    def normalize_agent_payload(payload: Any) -> Optional[Any]:
        """
        Deployments return either {output: ...}, {result: ...} or the final
        state under state.values. Falls back to the raw payload.
        """
        if not payload:
            return None
        if not isinstance(payload, dict):
            return payload

        if payload.get("output"):
            return payload["output"]
        if payload.get("result"):
            return payload["result"]

        state = payload.get("state")
        if isinstance(state, dict) and isinstance(state.get("values"), list) and state["values"]:
            return state["values"][-1]

        return payload

    def analyze_email_for_subscription(self, email: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Ask the email agent whether an email is a subscription charge.

        Returns {matched, confidence, data} where data uses the same keys as
        a template match (service, amount, cycle, date), or None. The
        agent's currency is passed through but drafts read the currency
        from the amount symbol.
        """
        if not self.has_email_agent():
            return None

        payload = {
            "type": "subscription_email_analysis",
            "email": {
                "id": email.get("id"),
                "subject": email.get("subject"),
                "from": email.get("from"),
                "to": email.get("to"),
                "snippet": email.get("snippet"),
                "body": email.get("body"),
                "received_at": email.get("received_at"),
            },
            "metadata": {
                "userId": email.get("user_id"),
                "provider": email.get("provider"),
            },
        }

        result = self.normalize_agent_payload(self.call_agent(self.email_agent_id, payload))
        if not isinstance(result, dict):
            return None

        nested = result.get("subscription") if isinstance(result.get("subscription"), dict) else {}
        matched = result.get("subscription_detected")
        if matched is None:
            matched = result.get("matched")
        if matched is None:
            matched = result.get("is_subscription")

        def pick(*keys):
            for key in keys:
                if result.get(key) is not None:
                    return result[key]
            return None

        return {
            "matched": bool(matched),
            "confidence": result.get("confidence") if isinstance(result.get("confidence"), (int, float)) else None,
            "data": {
                "service": pick("service", "company") or nested.get("service") or "",
                "amount": pick("amount") if pick("amount") is not None else nested.get("amount"),
                "currency": pick("currency") or nested.get("currency"),
                "cycle": pick("billing_cycle", "cycle") or nested.get("billing_cycle"),
                "date": pick("next_billing_date", "date") or nested.get("next_billing_date"),
                "reasoning": pick("reasoning", "analysis", "explanation") or "",
                "email_id": email.get("id"),
                "provider": email.get("provider"),
            },
        }

    def chat_with_spend_coach(
        self,
        user_id: str,
        message: str,
        history: Optional[List[Dict[str, Any]]] = None,
        goal: Optional[str] = None,
        locale: Optional[str] = None,
        monthly_total: Optional[float] = None,
        yearly_total: Optional[float] = None,
        subscriptions: Optional[List[Dict[str, Any]]] = None,
        actions: Optional[List[str]] = None
    ) -> Optional[Dict[str, Any]]:
        """Send one chat turn to the spend coach, None when unavailable"""
        if not self.has_chat_agent():
            return None

        payload = {
            "type": "spend_coach_chat",
            "user": {
                "id": user_id,
                "goal": goal,
                "locale": locale or "en-US",
            },
            "message": message,
            "conversation": history or [],
            "context": {
                "monthly_total": monthly_total,
                "yearly_total": yearly_total,
                "subscriptions": subscriptions or [],
                "requested_actions": actions or [],
            },
        }

        result = self.normalize_agent_payload(self.call_agent(self.chat_agent_id, payload))
        if not isinstance(result, dict):
            return None

        confidence = result.get("confidence")
        return {
            "message": result.get("reply") or result.get("message") or "",
            "suggestions": result.get("suggestions") or [],
            "actions": result.get("actions") or [],
            "confidence": confidence if isinstance(confidence, (int, float)) else None,
            "raw": result,
        }
