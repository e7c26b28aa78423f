"""
Shared pytest fixtures - temporary SQLite database, fake mailbox and TestClient
"""
import base64
import uuid
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.api.deps import get_agent_service, get_import_orchestrator, get_subscription_job
from app.core.database import Base, create_db_engine, get_db, init_db
from app.main import app
from app.models import EmailConnection, User
from app.services import auth_service
from app.services.agent_service import LangGraphAgentService
from app.services.email_import import ImportOrchestrator
from app.services.seed_data import seed_default_templates
from app.services.subscription_job import SubscriptionUpdateJob


def encode_body(text: str) -> str:
    """base64url without padding, as Gmail sends it"""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def make_message(message_id, sender, subject, body, multipart=False,
                 date_header="Mon, 02 Feb 2026 10:00:00 +0000"):
    """Build a Gmail API format=full message"""
    headers = [
        {"name": "From", "value": sender},
        {"name": "Subject", "value": subject},
        {"name": "Date", "value": date_header},
    ]
    if multipart:
        html = "<p>html part is ignored</p>"
        payload = {
            "mimeType": "multipart/alternative",
            "headers": headers,
            "body": {"size": 0},
            "parts": [
                {"mimeType": "text/plain", "body": {"size": len(body), "data": encode_body(body)}},
                {"mimeType": "text/html", "body": {"size": len(html), "data": encode_body(html)}},
            ],
        }
    else:
        payload = {
            "mimeType": "text/plain",
            "headers": headers,
            "body": {"size": len(body), "data": encode_body(body)},
        }
    return {"id": message_id, "threadId": f"thread-{message_id}", "snippet": body[:40], "payload": payload}


def filler_messages(count, prefix="other"):
    """Messages no default template matches"""
    return [
        make_message(f"{prefix}-{i}", "digest@news.example.org", "Your weekly digest", "Nothing to see here")
        for i in range(count)
    ]


class FakeMailbox:
    """Stands in for GmailClient in the orchestrator"""

    def __init__(self):
        self.messages = {}
        self.order = []
        self.failing_ids = set()
        self.search_error = None
        self.since_date = None
        self.on_yield = None

    def load(self, messages, failing_ids=()):
        self.messages = {m["id"]: m for m in messages}
        self.order = [m["id"] for m in messages] + list(failing_ids)
        self.failing_ids = set(failing_ids)

    def search_candidates(self, since_date):
        self.since_date = since_date
        if self.search_error:
            raise self.search_error
        return [{"id": message_id, "threadId": f"thread-{message_id}"} for message_id in self.order]

    def fetch_batch(self, message_ids):
        for index, message_id in enumerate(message_ids):
            if self.on_yield:
                self.on_yield(index)
            if message_id in self.failing_ids:
                yield message_id, None
            else:
                yield message_id, self.messages[message_id]


@pytest.fixture()
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def templates(db):
    seed_default_templates(db)


@pytest.fixture()
def mailbox():
    return FakeMailbox()


@pytest.fixture()
def disabled_agent():
    return LangGraphAgentService(base_url="", api_key="", email_agent_id="", chat_agent_id="")


@pytest.fixture()
def orchestrator(session_factory, mailbox, disabled_agent):
    orchestrator = ImportOrchestrator(
        session_factory=session_factory,
        fetcher_factory=lambda connection: mailbox,
        agent=disabled_agent,
        max_workers=2,
        progress_interval=10,
        lookback_months=3,
    )
    yield orchestrator
    orchestrator.shutdown(wait=True)


def create_user(db, name="alice"):
    return auth_service.create_user(db, name, f"{name}@example.com", "secret123")


@pytest.fixture()
def user(db):
    return create_user(db, "alice")


@pytest.fixture()
def other_user(db):
    return create_user(db, "bob")


def create_connection(db, user: User, email_address=None, token_expiry=None) -> EmailConnection:
    connection = EmailConnection(
        id=str(uuid.uuid4()),
        user_id=user.id,
        provider="gmail",
        email_address=email_address or user.email,
        access_token="access-token",
        refresh_token="refresh-token",
        token_expiry=token_expiry or datetime.utcnow() + timedelta(hours=1),
        is_active=True,
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


@pytest.fixture()
def connection(db, user):
    return create_connection(db, user)


@pytest.fixture()
def auth_headers(db, user):
    token = auth_service.issue_token(db, user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def client(session_factory, orchestrator, disabled_agent):
    """TestClient without the lifespan; app.state services are overridden"""
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    job = SubscriptionUpdateJob(session_factory=session_factory)
    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_import_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_agent_service] = lambda: disabled_agent
    app.dependency_overrides[get_subscription_job] = lambda: job
    yield TestClient(app)
    app.dependency_overrides.clear()


def wait_for(orchestrator, import_id, timeout=10):
    """Block until the background run finishes"""
    orchestrator.task_for(import_id).result(timeout=timeout)


@pytest.fixture(name="make_message")
def make_message_fixture():
    return make_message


@pytest.fixture(name="filler_messages")
def filler_messages_fixture():
    return filler_messages


@pytest.fixture(name="wait_for")
def wait_for_fixture():
    return wait_for


@pytest.fixture(name="create_connection")
def create_connection_fixture():
    return create_connection


@pytest.fixture(name="create_user")
def create_user_fixture():
    return create_user
