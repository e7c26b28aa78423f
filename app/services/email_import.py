"""
Email Import Orchestrator
Runs one background import per request: search, fetch, match, dedupe, insert
"""
import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, datetime
from typing import Optional, Dict, Any, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models import EmailConnection, EmailImportLog, ImportStatus
from app.services import subscription_service
from app.services.agent_service import LangGraphAgentService
from app.services.email_parser import EmailParser, MatchResult, SubscriptionDraft
from app.services.gmail_oauth import TokenRefreshError, refresh_access_token
from app.services.template_store import TemplateStore

logger = logging.getLogger(__name__)

REFRESH_FAILED_MESSAGE = "Failed to refresh authentication token"
INTERRUPTED_MESSAGE = "Import interrupted by server restart"


class ConnectionNotFoundError(Exception):
    """No active connection with this id for this user"""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Email connection not found: {connection_id}")


class ImportNotFoundError(Exception):
    """No import run with this id for this user"""

    def __init__(self, import_id: str):
        self.import_id = import_id
        super().__init__(f"Import not found: {import_id}")


class ImportAlreadyRunningError(Exception):
    """A run for this connection is still in progress"""

    def __init__(self, connection_id: str, import_id: Optional[str] = None):
        self.connection_id = connection_id
        self.import_id = import_id
        super().__init__("An import is already in progress for this connection")


class ImportRunError(Exception):
    """Run-level failure; the message is stored on the run"""


class ImportOrchestrator:
    """
    Owns the worker pool and the Future of every run it started.

    The EmailImportLog row is the source of truth for progress. Workers open
    their own sessions through session_factory; the request session is only
    used to validate and insert the run.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        fetcher_factory: Callable[[EmailConnection], Any],
        parser: Optional[EmailParser] = None,
        template_store: Optional[TemplateStore] = None,
        agent: Optional[LangGraphAgentService] = None,
        token_refresher: Callable = refresh_access_token,
        max_workers: Optional[int] = None,
        progress_interval: Optional[int] = None,
        lookback_months: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.fetcher_factory = fetcher_factory
        self.parser = parser or EmailParser()
        self.template_store = template_store or TemplateStore()
        self.agent = agent
        self.token_refresher = token_refresher
        self.progress_interval = progress_interval or settings.IMPORT_PROGRESS_INTERVAL
        self.lookback_months = lookback_months or settings.IMPORT_LOOKBACK_MONTHS

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.IMPORT_WORKERS,
            thread_name_prefix="email-import",
        )
        self._tasks: Dict[str, Future] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Request side
    # ------------------------------------------------------------------

    def start_import(self, db: Session, user_id: str, connection_id: str) -> str:
        """
        Validate the connection, insert an in_progress run and schedule it.
        Returns the import id without waiting for the run.
        """
        with self._lock:
            connection = db.query(EmailConnection).filter(
                EmailConnection.id == connection_id,
                EmailConnection.user_id == user_id,
                EmailConnection.is_active == True  # noqa: E712
            ).first()
            if not connection:
                raise ConnectionNotFoundError(connection_id)

            running = db.query(EmailImportLog).filter(
                EmailImportLog.connection_id == connection_id,
                EmailImportLog.status == ImportStatus.IN_PROGRESS.value
            ).first()
            if running:
                raise ImportAlreadyRunningError(connection_id, running.id)

            import_id = str(uuid.uuid4())
            db.add(EmailImportLog(
                id=import_id,
                user_id=user_id,
                connection_id=connection_id,
                status=ImportStatus.IN_PROGRESS.value,
                emails_processed=0,
                subscriptions_found=0,
                started_at=datetime.utcnow(),
            ))
            try:
                db.commit()
            except IntegrityError:
                # Another process won the partial unique index
                db.rollback()
                raise ImportAlreadyRunningError(connection_id)

            self._tasks[import_id] = self._executor.submit(self._run, import_id)

        logger.info("Email import %s started for connection %s", import_id, connection_id)
        return import_id

    def get_status(self, db: Session, import_id: str, user_id: str) -> EmailImportLog:
        run = db.query(EmailImportLog).filter(
            EmailImportLog.id == import_id,
            EmailImportLog.user_id == user_id
        ).first()
        if not run:
            raise ImportNotFoundError(import_id)
        return run

    def task_for(self, import_id: str) -> Optional[Future]:
        return self._tasks.get(import_id)

    def reap_stuck_runs(self, db: Optional[Session] = None) -> int:
        """Fail runs left in_progress by a previous process"""
        own_session = db is None
        db = db or self.session_factory()
        try:
            stuck = db.query(EmailImportLog).filter(
                EmailImportLog.status == ImportStatus.IN_PROGRESS.value
            ).all()
            now = datetime.utcnow()
            for run in stuck:
                if run.id in self._tasks:
                    continue
                run.status = ImportStatus.FAILED.value
                run.error_message = INTERRUPTED_MESSAGE
                run.completed_at = now
            db.commit()

            reaped = sum(1 for run in stuck if run.id not in self._tasks)
            if reaped:
                logger.warning("Reaped %d interrupted email imports", reaped)
            return reaped
        finally:
            if own_session:
                db.close()

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _run(self, import_id: str):
        db = self.session_factory()
        try:
            self._process(db, import_id)
        except Exception as e:
            logger.exception("Email import %s failed", import_id)
            db.rollback()
            message = str(e) if isinstance(e, ImportRunError) else f"Import failed: {e}"
            self._finish(db, import_id, ImportStatus.FAILED, error_message=message)
        finally:
            db.close()

    def _process(self, db: Session, import_id: str):
        run = db.query(EmailImportLog).filter(EmailImportLog.id == import_id).one()
        connection = db.query(EmailConnection).filter(EmailConnection.id == run.connection_id).one()
        user_id = run.user_id

        self._ensure_fresh_token(db, connection)

        templates = self.template_store.load(db)
        fetcher = self.fetcher_factory(connection)

        since = subscription_service.add_months(date.today(), -self.lookback_months)
        refs = fetcher.search_candidates(since)
        message_ids = [ref["id"] for ref in refs if ref.get("id")]
        logger.info("Email import %s: %d candidate messages since %s", import_id, len(message_ids), since)

        processed = 0
        found = 0
        for message_id, message in fetcher.fetch_batch(message_ids):
            processed += 1
            if message is not None:
                try:
                    if self._import_message(db, message, templates, connection, user_id, import_id):
                        found += 1
                except Exception:
                    db.rollback()
                    logger.warning("Email import %s: failed to process message %s", import_id, message_id, exc_info=True)

            if processed % self.progress_interval == 0:
                self._record_progress(db, import_id, processed, found)

        self._record_progress(db, import_id, processed, found)
        connection.last_sync_at = datetime.utcnow()
        self._finish(db, import_id, ImportStatus.COMPLETED)
        logger.info("Email import %s completed: %d processed, %d found", import_id, processed, found)

    def _ensure_fresh_token(self, db: Session, connection: EmailConnection):
        if not connection.token_expired():
            return
        try:
            tokens = self.token_refresher(connection.refresh_token)
        except TokenRefreshError as e:
            logger.warning("Token refresh failed for connection %s: %s", connection.id, e)
            raise ImportRunError(REFRESH_FAILED_MESSAGE) from e

        connection.access_token = tokens.access_token
        connection.refresh_token = tokens.refresh_token or connection.refresh_token
        connection.token_expiry = tokens.expiry
        db.commit()

    def _detect(self, message: Dict[str, Any], templates, connection: EmailConnection, user_id: str) -> Optional[SubscriptionDraft]:
        """Template match first, then the email agent when one is configured"""
        headers, body_text = self.parser.decode(message)
        result = self.parser.match(headers, body_text, templates, email_id=message.get("id"))

        if not result.matched and self.agent is not None and self.agent.has_email_agent():
            analysis = self.agent.analyze_email_for_subscription({
                "id": message.get("id"),
                "subject": headers.get("subject"),
                "from": headers.get("from"),
                "to": headers.get("to"),
                "snippet": message.get("snippet"),
                "body": body_text,
                "received_at": headers.get("date"),
                "user_id": user_id,
                "provider": connection.provider,
            })
            if analysis and analysis["matched"] and analysis["data"].get("service"):
                result = MatchResult(matched=True, template="agent", data=analysis["data"])

        return self.parser.to_draft(result, provider=connection.provider)

    def _import_message(self, db: Session, message, templates, connection, user_id, import_id) -> bool:
        draft = self._detect(message, templates, connection, user_id)
        if draft is None:
            return False

        if subscription_service.find_duplicate(db, user_id, draft.company, draft.amount):
            logger.debug("Skipping duplicate %s (%.2f)", draft.company, draft.amount)
            return False

        subscription_service.create_subscription(
            db,
            user_id,
            draft.to_dict(),
            source=draft.source,
            source_id=draft.source_id,
            import_id=import_id,
        )
        return True

    def _record_progress(self, db: Session, import_id: str, processed: int, found: int):
        run = db.query(EmailImportLog).filter(EmailImportLog.id == import_id).one()
        if run.is_terminal:
            return
        # Counters never go backwards
        run.emails_processed = max(run.emails_processed or 0, processed)
        run.subscriptions_found = max(run.subscriptions_found or 0, found)
        db.commit()

    def _finish(self, db: Session, import_id: str, status: ImportStatus, error_message: Optional[str] = None):
        """Move the run to a terminal state; a terminal run is never touched again"""
        run = db.query(EmailImportLog).filter(EmailImportLog.id == import_id).first()
        if run is None or run.is_terminal:
            return
        run.status = status.value
        run.completed_at = datetime.utcnow()
        if error_message:
            run.error_message = error_message
        db.commit()
