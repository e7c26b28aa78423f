"""
Email Parser Service
Decodes Gmail messages and matches them against subscription templates
"""
import base64
import binascii
import logging
import re
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any, List, Tuple

from app.models import BillingCycle, SubscriptionSource
from app.services.subscription_service import add_months
from app.services.template_store import TemplateSpec

logger = logging.getLogger(__name__)

# Currency symbols recognised in raw amount text; anything else is USD
CURRENCY_SYMBOLS = (
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "CNY"),
)
DEFAULT_CURRENCY = "USD"

# Checked in order against the lower-cased cycle text
CYCLE_KEYWORDS = (
    ("year", BillingCycle.YEARLY.value),
    ("week", BillingCycle.WEEKLY.value),
    ("day", BillingCycle.DAILY.value),
)


@dataclass
class MatchResult:
    """Outcome of matching one email against the template list"""
    matched: bool
    template: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SubscriptionDraft:
    """Candidate subscription extracted from an email, before dedupe"""
    company: str
    amount: float
    currency: str
    billing_cycle: str
    next_billing_date: date
    notes: str
    category: Optional[str] = None
    email_id: Optional[str] = None
    source: str = SubscriptionSource.EMAIL.value
    source_id: Optional[str] = None
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_amount(raw: Optional[str]) -> float:
    """
    Strip everything except digits and dots, then parse.

    This is deliberately naive: "$1,299.00" -> 1299.0, but a decimal comma
    is dropped too, so "€9,99" -> 999.0. Unparsable input gives 0.
    """
    if raw is None:
        return 0.0
    cleaned = re.sub(r"[^0-9.]", "", str(raw))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def detect_currency(raw: Optional[str]) -> str:
    """Currency from literal symbols in the raw amount text"""
    if raw:
        for symbol, code in CURRENCY_SYMBOLS:
            if symbol in str(raw):
                return code
    return DEFAULT_CURRENCY


def detect_billing_cycle(raw: Optional[str]) -> str:
    """Substring match on the cycle text, monthly when nothing matches"""
    if raw:
        text = str(raw).lower()
        for keyword, cycle in CYCLE_KEYWORDS:
            if keyword in text:
                return cycle
    return BillingCycle.MONTHLY.value


DATE_FORMATS = [
    "%Y-%m-%d",       # 2026-02-16
    "%B %d, %Y",      # February 16, 2026
    "%b %d, %Y",      # Feb 16, 2026
    "%B %d %Y",       # February 16 2026
    "%b %d %Y",       # Feb 16 2026
    "%d %B %Y",       # 16 February 2026
    "%d %b %Y",       # 16 Feb 2026
    "%m/%d/%Y",       # 02/16/2026
    "%Y/%m/%d",       # 2026/02/16
    "%d-%b-%Y",       # 16-Feb-2026
    "%d.%m.%Y",       # 16.02.2026
]


def parse_date_text(raw: Optional[str]) -> Optional[date]:
    """
    Normalize various date formats to a date.
    Returns None if nothing matches.
    """
    if not raw:
        return None

    text = str(raw).strip().rstrip(".")
    text = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", text)  # 3rd -> 3
    text = re.sub(r"^[A-Za-z]+day,?\s+", "", text)  # drop leading weekday
    text = re.sub(r"^([A-Za-z]{3})\.", r"\1", text)  # Feb. -> Feb
    text = re.sub(r"\s+", " ", text)

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    # ISO timestamps from agents, e.g. 2026-02-16T00:00:00Z
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_billing_date(raw: Optional[str], today: Optional[date] = None) -> date:
    """Parsed date, or one month from today when absent or unparsable"""
    parsed = parse_date_text(raw)
    if parsed is not None:
        return parsed
    return add_months(today or date.today(), 1)


class EmailParser:
    """
    Matches Gmail API messages against the ordered template list.

    Header names are lower-cased. Templates are tried in order; one is
    eligible when its sender and subject regexes (when set) both match
    case-insensitively, and it wins when its body patterns yield at least
    an amount or a date.
    """

    REQUIRED_FIELDS = ("amount", "date")

    def parse_headers(self, headers: Optional[List[Dict[str, str]]]) -> Dict[str, str]:
        """Gmail header list -> {lower-cased name: value}"""
        result: Dict[str, str] = {}
        if not headers or not isinstance(headers, list):
            return result

        for header in headers:
            name = header.get("name")
            if name:
                result[name.lower()] = header.get("value", "")
        return result

    def decode_body_data(self, body: Optional[Dict[str, Any]]) -> str:
        """Decode a Gmail body part (base64url) to text"""
        if not body or not body.get("data"):
            return ""

        data = body["data"]
        try:
            padded = data + "=" * (-len(data) % 4)
            return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as e:
            logger.warning("Error decoding email body: %s", e)
            return ""

    def _plain_text_parts(self, parts: List[Dict[str, Any]]) -> List[str]:
        texts = []
        for part in parts or []:
            if part.get("mimeType") == "text/plain":
                texts.append(self.decode_body_data(part.get("body")))
            elif part.get("parts"):
                texts.extend(self._plain_text_parts(part["parts"]))
        return texts

    def decode(self, message: Dict[str, Any]) -> Tuple[Dict[str, str], str]:
        """
        Split a full Gmail message into headers and body text.

        A non-empty top-level body wins; otherwise every text/plain part is
        concatenated. HTML parts are ignored.
        """
        payload = message.get("payload") or {}
        headers = self.parse_headers(payload.get("headers"))

        body = payload.get("body") or {}
        if body.get("size", 0) > 0 or body.get("data"):
            body_text = self.decode_body_data(body)
        else:
            body_text = "".join(self._plain_text_parts(payload.get("parts")))

        return headers, body_text

    def _header_matches(self, pattern: Optional[str], value: str, template: TemplateSpec) -> bool:
        if not pattern:
            return True
        try:
            return re.search(pattern, value or "", re.IGNORECASE) is not None
        except re.error as e:
            logger.warning("Invalid header pattern on template %s: %s", template.service_name, e)
            return False

    def extract_fields(self, body: str, patterns: Dict[str, str]) -> Optional[Dict[str, str]]:
        """
        Apply each body pattern and keep non-empty first groups.
        Returns None unless an amount or a date was found.
        """
        if not patterns or not isinstance(patterns, dict):
            return None

        result: Dict[str, str] = {}
        for key, pattern in patterns.items():
            try:
                match = re.search(pattern, body or "", re.IGNORECASE)
            except re.error as e:
                logger.warning("Regex error for %s: %s", key, e)
                continue

            if match and match.lastindex and match.group(1) and match.group(1).strip():
                result[key] = match.group(1).strip()

        if not any(result.get(key) for key in self.REQUIRED_FIELDS):
            return None
        return result

    def received_at(self, headers: Dict[str, str]) -> datetime:
        """Date header as datetime, now when missing or malformed"""
        value = headers.get("date")
        if value:
            try:
                return parsedate_to_datetime(value)
            except (TypeError, ValueError):
                pass
        return datetime.utcnow()

    def match(
        self,
        headers: Dict[str, str],
        body_text: str,
        templates: List[TemplateSpec],
        email_id: Optional[str] = None
    ) -> MatchResult:
        """First eligible template with a usable extraction wins"""
        sender = headers.get("from", "")
        subject = headers.get("subject", "")

        for template in templates:
            if not self._header_matches(template.sender_pattern, sender, template):
                continue
            if not self._header_matches(template.subject_pattern, subject, template):
                continue

            extracted = self.extract_fields(body_text, template.body_patterns)
            if not extracted:
                logger.debug("Data extraction failed for %s", template.service_name)
                continue

            return MatchResult(
                matched=True,
                template=template.service_name,
                data={
                    **extracted,
                    "service": template.service_name,
                    "category": template.category,
                    "email_id": email_id,
                    "received_at": self.received_at(headers),
                },
            )

        return MatchResult(matched=False)

    def match_message(self, message: Dict[str, Any], templates: List[TemplateSpec]) -> MatchResult:
        """Decode a full Gmail message and match it"""
        headers, body_text = self.decode(message)
        return self.match(headers, body_text, templates, email_id=message.get("id"))

    def to_draft(
        self,
        result: MatchResult,
        provider: str = "gmail",
        today: Optional[date] = None
    ) -> Optional[SubscriptionDraft]:
        """Convert a match into a SubscriptionDraft"""
        if not result.matched:
            return None

        data = result.data
        raw_amount = data.get("amount")
        raw_amount = None if raw_amount is None else str(raw_amount)
        email_id = data.get("email_id")

        return SubscriptionDraft(
            company=data.get("service") or result.template or "Unknown",
            category=data.get("category") or None,
            amount=parse_amount(raw_amount),
            currency=detect_currency(raw_amount),
            billing_cycle=detect_billing_cycle(data.get("cycle")),
            next_billing_date=parse_billing_date(data.get("date"), today),
            notes=f"Automatically detected from email (ID: {email_id})",
            email_id=email_id,
            source_id=f"email_{provider}_{email_id}" if email_id else None,
        )
