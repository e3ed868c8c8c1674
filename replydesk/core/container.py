"""
Dependency Injection Container for ReplyDesk.

Builds every long-lived client and service once per process and hands them to
the components that need them. Nothing in the service layer reaches for a
module-level client.

Usage:
    container = DependencyContainer(settings)
    await container.initialize()

    generator = container.response_generator

    await container.shutdown()
"""

from __future__ import annotations

from typing import Optional

import structlog
from supabase import Client, create_client

from replydesk.billing.quota import QuotaEvaluator
from replydesk.config.settings import Settings, get_settings
from replydesk.core.exceptions import InitializationError
from replydesk.core.work_queue import WorkQueue
from replydesk.google.business_profile import BusinessProfileClient
from replydesk.google.credentials import CredentialStore
from replydesk.scheduler.jobs import JobRunner
from replydesk.services.digest import DigestService
from replydesk.services.llm import LLMProvider, build_provider
from replydesk.services.notifications import EmailSender, NotificationService
from replydesk.services.response_generator import ReviewResponseGenerator
from replydesk.services.response_lifecycle import ResponseLifecycleManager
from replydesk.services.review_sync import ReviewSynchronizer
from replydesk.services.sentiment import SemanticSentimentClassifier
from replydesk.storage.supabase_store import SupabaseStore

logger = structlog.get_logger(__name__)


class DependencyContainer:
    """
    Central container for all service dependencies.

    Clients are created lazily on first access and cached. Tests can pass
    pre-built collaborators (a fake Supabase client, a stub LLM provider, an
    adapter on a mock transport) through the constructor.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        supabase: Client | None = None,
        llm_provider: LLMProvider | None = None,
        adapter: BusinessProfileClient | None = None,
        email_sender: EmailSender | None = None,
        work_queue: WorkQueue | None = None,
    ):
        """
        Initialize the container.

        Args:
            settings: Application settings. Defaults to get_settings().
        """
        self._settings = settings or get_settings()
        self._supabase = supabase
        self._llm = llm_provider
        self._adapter = adapter
        self._email_sender = email_sender
        self._work_queue = work_queue

        self._store: Optional[SupabaseStore] = None
        self._credentials: Optional[CredentialStore] = None
        self._quota: Optional[QuotaEvaluator] = None
        self._notifications: Optional[NotificationService] = None
        self._generator: Optional[ReviewResponseGenerator] = None
        self._lifecycle: Optional[ResponseLifecycleManager] = None
        self._synchronizer: Optional[ReviewSynchronizer] = None
        self._digest: Optional[DigestService] = None
        self._jobs: Optional[JobRunner] = None
        self._initialized = False

        logger.info("dependency_container_created")

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    @property
    def supabase(self) -> Client:
        """
        Get Supabase client (lazy initialization).

        Raises:
            InitializationError: If the client cannot be created.
        """
        if self._supabase is None:
            try:
                self._supabase = create_client(
                    self._settings.supabase_url,
                    self._settings.supabase_key.get_secret_value(),
                )
                logger.info("supabase_client_created")
            except Exception as e:
                logger.error("supabase_client_creation_failed", error=str(e))
                raise InitializationError(
                    "Supabase",
                    f"Failed to create Supabase client: {e}",
                    {"url": self._settings.supabase_url},
                ) from e
        return self._supabase

    @property
    def llm(self) -> LLMProvider:
        """Get the configured language model provider."""
        if self._llm is None:
            try:
                self._llm = build_provider(self._settings)
                logger.info("llm_provider_created", provider=self._llm.name, model=self._llm.model)
            except Exception as e:
                logger.error("llm_provider_creation_failed", error=str(e))
                raise InitializationError(
                    "LLMProvider",
                    f"Failed to create LLM provider: {e}",
                    {"provider": self._settings.llm_provider},
                ) from e
        return self._llm

    @property
    def work_queue(self) -> WorkQueue:
        if self._work_queue is None:
            self._work_queue = WorkQueue(
                max_size=self._settings.work_queue_size,
                workers=self._settings.work_queue_workers,
            )
        return self._work_queue

    @property
    def email_sender(self) -> EmailSender:
        if self._email_sender is None:
            key = self._settings.sendgrid_api_key
            self._email_sender = EmailSender(
                api_key=key.get_secret_value() if key else None,
                from_email=self._settings.from_email,
                from_name=self._settings.from_name,
            )
        return self._email_sender

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    @property
    def store(self) -> SupabaseStore:
        if self._store is None:
            self._store = SupabaseStore(self.supabase)
        return self._store

    @property
    def credentials(self) -> CredentialStore:
        if self._credentials is None:
            secret = self._settings.google_client_secret
            self._credentials = CredentialStore(
                self.store,
                client_id=self._settings.google_client_id,
                client_secret=secret.get_secret_value() if secret else None,
                token_url=self._settings.google_token_url,
            )
        return self._credentials

    @property
    def adapter(self) -> BusinessProfileClient:
        if self._adapter is None:
            s = self._settings
            self._adapter = BusinessProfileClient(
                self.credentials,
                base_url=s.gbp_api_base_url,
                timeout=s.gbp_timeout_seconds,
                max_retries=s.gbp_max_retries,
                initial_backoff=s.gbp_initial_backoff_seconds,
                max_backoff=s.gbp_max_backoff_seconds,
                page_size=s.gbp_page_size,
            )
        return self._adapter

    @property
    def quota(self) -> QuotaEvaluator:
        if self._quota is None:
            self._quota = QuotaEvaluator(self.store)
        return self._quota

    @property
    def notifications(self) -> NotificationService:
        if self._notifications is None:
            self._notifications = NotificationService(
                self.store, self.email_sender, app_base_url=self._settings.app_base_url
            )
        return self._notifications

    @property
    def response_generator(self) -> ReviewResponseGenerator:
        if self._generator is None:
            s = self._settings
            self._generator = ReviewResponseGenerator(
                self.llm,
                self.store,
                self.quota,
                max_tokens=s.llm_max_tokens,
                temperature=s.llm_temperature,
                input_price_per_1k=s.llm_input_price_per_1k,
                output_price_per_1k=s.llm_output_price_per_1k,
            )
        return self._generator

    @property
    def lifecycle(self) -> ResponseLifecycleManager:
        if self._lifecycle is None:
            self._lifecycle = ResponseLifecycleManager(self.store, self.adapter)
        return self._lifecycle

    @property
    def synchronizer(self) -> ReviewSynchronizer:
        if self._synchronizer is None:
            classifier = None
            if self._settings.semantic_sentiment_enabled:
                classifier = SemanticSentimentClassifier(self.llm, self.store)
            self._synchronizer = ReviewSynchronizer(
                self.store,
                self.adapter,
                self.work_queue,
                self.notifications,
                sentiment_classifier=classifier,
            )
        return self._synchronizer

    @property
    def digest(self) -> DigestService:
        if self._digest is None:
            self._digest = DigestService(self.store, self.notifications)
        return self._digest

    @property
    def jobs(self) -> JobRunner:
        if self._jobs is None:
            self._jobs = JobRunner(
                self.store,
                self.synchronizer,
                self.digest,
                sync_delay=self._settings.sync_delay_seconds,
                digest_delay=self._settings.digest_delay_seconds,
            )
        return self._jobs

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create core clients eagerly and start background workers."""
        if self._initialized:
            return
        _ = self.store
        await self.work_queue.start()
        self._initialized = True
        logger.info("dependency_container_initialized")

    async def shutdown(self) -> None:
        """Drain background work and close HTTP clients."""
        if self._work_queue is not None:
            await self._work_queue.stop()
        if self._adapter is not None:
            await self._adapter.aclose()
        self._initialized = False
        logger.info("dependency_container_shutdown")
