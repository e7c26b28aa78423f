"""
Tests for the email import orchestrator
"""
from datetime import date, datetime, timedelta

import pytest
import responses

from app.models import EmailConnection, EmailImportLog, ImportStatus, Subscription
from app.services import subscription_service
from app.services.agent_service import LangGraphAgentService
from app.services.email_import import (
    ImportOrchestrator, ConnectionNotFoundError, ImportNotFoundError, ImportAlreadyRunningError,
    INTERRUPTED_MESSAGE, REFRESH_FAILED_MESSAGE
)
from app.services.gmail_oauth import OAuthTokens, TokenRefreshError


NETFLIX_BODY = "Total: $15.49\nNext billing date: March 3, 2026\nBilled monthly"
SPOTIFY_BODY = "Total: $10.99\nNext payment date: 2026-03-10\nBilled monthly"
ADOBE_BODY = "Payment of $599.88 received.\nRenews on January 15, 2027. Billed per year."


def subscription_messages(make_message):
    return [
        make_message("netflix-1", "info@account.netflix.com", "Your Netflix receipt", NETFLIX_BODY),
        make_message("spotify-1", "no-reply@spotify.com", "Your Spotify Premium receipt", SPOTIFY_BODY),
        make_message("adobe-1", "mail@mail.adobe.com", "Your Adobe invoice", ADOBE_BODY, multipart=True),
    ]


def add_existing_netflix(db, user):
    return subscription_service.create_subscription(db, user.id, {
        "company": "Netflix",
        "category": "Entertainment",
        "amount": 15.49,
        "next_billing_date": date(2026, 3, 3),
    })


def fresh_run(session_factory, import_id) -> EmailImportLog:
    session = session_factory()
    try:
        run = session.query(EmailImportLog).filter(EmailImportLog.id == import_id).one()
        session.expunge(run)
        return run
    finally:
        session.close()


class TestStartImport:
    """Validation before a run is scheduled"""

    def test_unknown_connection_creates_no_run(self, db, user, orchestrator):
        with pytest.raises(ConnectionNotFoundError):
            orchestrator.start_import(db, user.id, "does-not-exist")

        assert db.query(EmailImportLog).count() == 0

    def test_other_users_connection_is_not_found(self, db, user, other_user, orchestrator, create_connection):
        foreign = create_connection(db, other_user)

        with pytest.raises(ConnectionNotFoundError):
            orchestrator.start_import(db, user.id, foreign.id)

    def test_inactive_connection_is_not_found(self, db, user, connection, orchestrator):
        connection.is_active = False
        db.commit()

        with pytest.raises(ConnectionNotFoundError):
            orchestrator.start_import(db, user.id, connection.id)

    def test_second_start_while_in_progress_conflicts(self, db, user, connection, orchestrator):
        db.add(EmailImportLog(
            id="running-1",
            user_id=user.id,
            connection_id=connection.id,
            status=ImportStatus.IN_PROGRESS.value,
        ))
        db.commit()

        with pytest.raises(ImportAlreadyRunningError):
            orchestrator.start_import(db, user.id, connection.id)

        assert db.query(EmailImportLog).count() == 1

    def test_partial_index_allows_finished_runs(self, db, user, connection, orchestrator, mailbox, wait_for):
        """Completed runs do not block a new one"""
        first = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, first)
        second = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, second)

        assert first != second
        assert db.query(EmailImportLog).count() == 2


class TestImportRun:
    """Background run behaviour"""

    def test_import_with_duplicate(self, db, user, connection, templates, orchestrator, mailbox,
                                   session_factory, make_message, filler_messages, wait_for):
        """25 messages, 3 matches, 1 already tracked -> 25 processed, 2 found"""
        add_existing_netflix(db, user)
        mailbox.load(filler_messages(11) + subscription_messages(make_message) + filler_messages(11, "late"))

        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        run = fresh_run(session_factory, import_id)
        assert run.status == ImportStatus.COMPLETED.value
        assert run.emails_processed == 25
        assert run.subscriptions_found == 2
        assert run.completed_at is not None
        assert run.error_message is None

        imported = subscription_service.subscriptions_for_import(db, user.id, import_id)
        assert sorted(s.company for s in imported) == ["Adobe Creative Cloud", "Spotify"]
        assert db.query(Subscription).filter(Subscription.company == "Netflix").count() == 1

    def test_imported_subscription_fields(self, db, user, connection, templates, orchestrator, mailbox,
                                          make_message, wait_for):
        mailbox.load(subscription_messages(make_message))

        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        adobe = db.query(Subscription).filter(Subscription.company == "Adobe Creative Cloud").one()
        assert adobe.amount == 599.88
        assert adobe.currency == "USD"
        assert adobe.billing_cycle == "yearly"
        assert adobe.next_billing_date == date(2027, 1, 15)
        assert adobe.category == "Productivity"
        assert adobe.source == "email"
        assert adobe.source_id == "email_gmail_adobe-1"
        assert adobe.import_id == import_id
        assert adobe.notes == "Automatically detected from email (ID: adobe-1)"

    def test_duplicates_within_one_run_are_skipped(self, db, user, connection, templates, orchestrator, mailbox,
                                                   session_factory, make_message, wait_for):
        mailbox.load([
            make_message("n-1", "info@netflix.com", "Netflix receipt", NETFLIX_BODY),
            make_message("n-2", "info@netflix.com", "Netflix receipt", NETFLIX_BODY),
        ])

        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        run = fresh_run(session_factory, import_id)
        assert run.emails_processed == 2
        assert run.subscriptions_found == 1

    def test_fetch_failures_count_as_processed(self, db, user, connection, templates, orchestrator, mailbox,
                                               session_factory, make_message, wait_for):
        mailbox.load(subscription_messages(make_message), failing_ids=["gone-1", "gone-2"])

        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        run = fresh_run(session_factory, import_id)
        assert run.status == ImportStatus.COMPLETED.value
        assert run.emails_processed == 5
        assert run.subscriptions_found == 3

    def test_search_window_is_three_months(self, db, user, connection, orchestrator, mailbox, wait_for):
        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        assert mailbox.since_date == subscription_service.add_months(date.today(), -3)

    def test_progress_is_flushed_every_ten_messages(self, db, user, connection, orchestrator, mailbox,
                                                    session_factory, filler_messages, wait_for):
        seen = {}

        def snapshot(index):
            if index == 10:
                session = session_factory()
                try:
                    run = session.query(EmailImportLog).filter(
                        EmailImportLog.status == ImportStatus.IN_PROGRESS.value
                    ).one()
                    seen["processed"] = run.emails_processed
                finally:
                    session.close()

        mailbox.load(filler_messages(15))
        mailbox.on_yield = snapshot

        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        assert seen["processed"] == 10
        assert fresh_run(session_factory, import_id).emails_processed == 15

    def test_completion_sets_last_sync(self, db, user, connection, orchestrator, mailbox, wait_for):
        assert connection.last_sync_at is None

        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        db.expire_all()
        assert db.get(EmailConnection, connection.id).last_sync_at is not None

    def test_search_error_fails_run(self, db, user, connection, orchestrator, mailbox, session_factory, wait_for):
        mailbox.search_error = RuntimeError("Gmail unavailable")

        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        run = fresh_run(session_factory, import_id)
        assert run.status == ImportStatus.FAILED.value
        assert "Gmail unavailable" in run.error_message
        assert run.completed_at is not None

    def test_get_status_is_scoped_to_user(self, db, user, other_user, connection, orchestrator, wait_for):
        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)

        assert orchestrator.get_status(db, import_id, user.id).id == import_id
        with pytest.raises(ImportNotFoundError):
            orchestrator.get_status(db, import_id, other_user.id)


class TestTokenRefresh:
    """Expired access tokens are refreshed before the run"""

    def build(self, session_factory, mailbox, refresher):
        return ImportOrchestrator(
            session_factory=session_factory,
            fetcher_factory=lambda connection: mailbox,
            token_refresher=refresher,
            max_workers=1,
        )

    def test_expired_token_is_refreshed(self, db, user, session_factory, mailbox, create_connection, wait_for):
        expired = create_connection(db, user, token_expiry=datetime.utcnow() - timedelta(minutes=5))
        new_expiry = datetime.utcnow() + timedelta(hours=1)
        orchestrator = self.build(
            session_factory, mailbox,
            lambda refresh_token: OAuthTokens("new-access", None, new_expiry),
        )
        try:
            import_id = orchestrator.start_import(db, user.id, expired.id)
            wait_for(orchestrator, import_id)
        finally:
            orchestrator.shutdown(wait=True)

        db.expire_all()
        refreshed = db.get(EmailConnection, expired.id)
        assert refreshed.access_token == "new-access"
        assert refreshed.refresh_token == "refresh-token"
        assert fresh_run(session_factory, import_id).status == ImportStatus.COMPLETED.value

    def test_refresh_failure_fails_run(self, db, user, session_factory, mailbox, create_connection, wait_for):
        expired = create_connection(db, user, token_expiry=datetime.utcnow() - timedelta(minutes=5))

        def reject(refresh_token):
            raise TokenRefreshError("invalid_grant")

        orchestrator = self.build(session_factory, mailbox, reject)
        try:
            import_id = orchestrator.start_import(db, user.id, expired.id)
            wait_for(orchestrator, import_id)
        finally:
            orchestrator.shutdown(wait=True)

        run = fresh_run(session_factory, import_id)
        assert run.status == ImportStatus.FAILED.value
        assert run.error_message == REFRESH_FAILED_MESSAGE


class TestAgentFallback:
    """Email agent is consulted only when no template matched"""

    @responses.activate
    def test_agent_detects_unmatched_email(self, db, user, connection, templates, session_factory, mailbox,
                                           make_message, wait_for):
        responses.add(
            responses.POST,
            "http://agent.test/agents/email-agent/invoke",
            json={"output": {
                "subscription_detected": True,
                "service": "Notion",
                "amount": "$8.00",
                "billing_cycle": "monthly",
                "next_billing_date": "2026-03-01",
            }},
            status=200,
        )
        agent = LangGraphAgentService(
            base_url="http://agent.test", api_key="key", email_agent_id="email-agent", chat_agent_id=""
        )
        orchestrator = ImportOrchestrator(
            session_factory=session_factory,
            fetcher_factory=lambda c: mailbox,
            agent=agent,
            max_workers=1,
        )
        mailbox.load([
            make_message("notion-1", "team@makenotion.com", "Your invoice", "Plus plan, thanks!"),
            make_message("netflix-1", "info@netflix.com", "Netflix receipt", NETFLIX_BODY),
        ])
        try:
            import_id = orchestrator.start_import(db, user.id, connection.id)
            wait_for(orchestrator, import_id)
        finally:
            orchestrator.shutdown(wait=True)

        # Only the unmatched email reached the agent
        assert len(responses.calls) == 1
        notion = db.query(Subscription).filter(Subscription.company == "Notion").one()
        assert notion.amount == 8.0
        assert notion.next_billing_date == date(2026, 3, 1)
        assert fresh_run(session_factory, import_id).subscriptions_found == 2

    @responses.activate
    def test_agent_failure_is_not_fatal(self, db, user, connection, session_factory, mailbox,
                                        make_message, wait_for):
        responses.add(responses.POST, "http://agent.test/agents/email-agent/invoke", status=500)
        agent = LangGraphAgentService(
            base_url="http://agent.test", api_key="key", email_agent_id="email-agent", chat_agent_id=""
        )
        orchestrator = ImportOrchestrator(
            session_factory=session_factory,
            fetcher_factory=lambda c: mailbox,
            agent=agent,
            max_workers=1,
        )
        mailbox.load([make_message("x-1", "team@example.com", "Invoice", "hello")])
        try:
            import_id = orchestrator.start_import(db, user.id, connection.id)
            wait_for(orchestrator, import_id)
        finally:
            orchestrator.shutdown(wait=True)

        run = fresh_run(session_factory, import_id)
        assert run.status == ImportStatus.COMPLETED.value
        assert run.emails_processed == 1
        assert run.subscriptions_found == 0


class TestRunLifecycle:
    """Stuck runs and terminal states"""

    def test_reap_stuck_runs(self, db, user, connection, orchestrator):
        db.add(EmailImportLog(
            id="stuck-1",
            user_id=user.id,
            connection_id=connection.id,
            status=ImportStatus.IN_PROGRESS.value,
        ))
        db.commit()

        assert orchestrator.reap_stuck_runs(db) == 1

        db.expire_all()
        run = db.get(EmailImportLog, "stuck-1")
        assert run.status == ImportStatus.FAILED.value
        assert run.error_message == INTERRUPTED_MESSAGE
        assert run.completed_at is not None

    def test_terminal_run_is_not_changed(self, db, user, connection, orchestrator, session_factory, wait_for):
        import_id = orchestrator.start_import(db, user.id, connection.id)
        wait_for(orchestrator, import_id)
        before = fresh_run(session_factory, import_id)

        session = session_factory()
        try:
            orchestrator._finish(session, import_id, ImportStatus.FAILED, error_message="late failure")
        finally:
            session.close()

        after = fresh_run(session_factory, import_id)
        assert after.status == ImportStatus.COMPLETED.value
        assert after.error_message is None
        assert after.completed_at == before.completed_at

    def test_progress_is_not_written_to_a_terminal_run(self, db, user, connection, orchestrator, session_factory):
        db.add(EmailImportLog(
            id="reaped-1",
            user_id=user.id,
            connection_id=connection.id,
            status=ImportStatus.FAILED.value,
            emails_processed=3,
            subscriptions_found=1,
            error_message=INTERRUPTED_MESSAGE,
        ))
        db.commit()

        session = session_factory()
        try:
            orchestrator._record_progress(session, "reaped-1", processed=20, found=4)
        finally:
            session.close()

        run = fresh_run(session_factory, "reaped-1")
        assert run.emails_processed == 3
        assert run.subscriptions_found == 1
