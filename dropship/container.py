"""
Service Container

Builds every shared, process-wide collaborator once at startup (API
lifespan or worker startup hook) and hands them to consumers explicitly.
One container means one rate limiter, one request queue and one image
semaphore per process.
"""
from typing import Optional

import structlog
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from dropship.config import Settings
from dropship.db.base import create_engine, create_session_maker
from dropship.models import StockValidationConfig
from dropship.services.extraction import (
    ExtractionPipeline,
    FingerprintGenerator,
    ImageDownloader,
    ProductScraper,
    RateLimiter,
    RedisRateLimiter,
    RequestQueue,
    StockValidator,
)
from dropship.services.extraction.throttle import Limiter
from dropship.services.fulfillment import (
    FulfillmentService,
    FulfillmentStateMachine,
    NotificationSink,
    OrderHandler,
    QueuedNotificationSink,
)
from dropship.services.fulfillment.notifications import build_delivery_sink
from dropship.services.import_jobs import ImportJobTracker
from dropship.services.import_service import ImportService
from dropship.services.pricing import PriceCalculator

logger = structlog.get_logger(__name__)


class Container:
    """Holds the wired services for one process."""

    def __init__(
        self,
        settings: Settings,
        redis: ArqRedis,
        engine: AsyncEngine,
        session_maker: async_sessionmaker[AsyncSession],
    ) -> None:
        self.settings = settings
        self.redis = redis
        self.engine = engine
        self.session_maker = session_maker

        self.scraper_limiter = self._limiter("scraper", settings.scraper.min_request_delay_ms)
        self.request_queue = RequestQueue(self.scraper_limiter)
        self.fingerprints = FingerprintGenerator()
        self.validator = StockValidator(StockValidationConfig(**settings.stock.model_dump()))
        self.downloader = ImageDownloader(
            settings.images,
            limiter=self._limiter("images", settings.images.min_request_delay_ms),
        )
        self.pipeline = ExtractionPipeline(
            scraper_factory=self.new_scraper,
            validator=self.validator,
            downloader=self.downloader,
            max_images=settings.images.max_images,
        )
        self.tracker = ImportJobTracker(redis, ttl_seconds=settings.imports.job_ttl_seconds)
        self.import_service = ImportService(
            pipeline=self.pipeline,
            tracker=self.tracker,
            session_maker=session_maker,
            settings=settings.imports,
            arq_redis=redis,
            validator=self.validator,
            calculator=PriceCalculator(settings.pricing),
        )

        # Delivery sink is what the worker uses; the API only enqueues
        self.delivery_sink = build_delivery_sink(settings.notifications)
        self.notifier: NotificationSink = (
            QueuedNotificationSink(redis) if settings.notifications.queued else self.delivery_sink
        )
        self.order_handler = OrderHandler(session_maker, settings.fulfillment)
        self.state_machine = FulfillmentStateMachine(session_maker, self.notifier)
        self.fulfillment = FulfillmentService(session_maker, settings.fulfillment)

    def _limiter(self, name: str, min_interval_ms: int) -> Limiter:
        if self.settings.scraper.shared_rate_limit:
            return RedisRateLimiter(self.redis, name, min_interval_ms)
        return RateLimiter(min_interval_ms)

    def new_scraper(self) -> ProductScraper:
        return ProductScraper(self.settings.scraper, self.request_queue, self.fingerprints)

    @classmethod
    async def create(cls, settings: Settings, redis: Optional[ArqRedis] = None) -> "Container":
        """Open connections and wire services.

        Args:
            settings: Application settings
            redis: Existing arq pool (the worker passes its own)
        """
        if redis is None:
            redis = await create_pool(
                RedisSettings.from_dsn(settings.redis_url),
                default_queue_name=settings.queue_name,
            )
        engine = create_engine(settings)
        container = cls(settings, redis, engine, create_session_maker(engine))
        logger.info(
            "container_started",
            environment=settings.environment,
            shared_rate_limit=settings.scraper.shared_rate_limit,
            queued_notifications=settings.notifications.queued,
        )
        return container

    async def close(self, close_redis: bool = True) -> None:
        await self.request_queue.close()
        await self.downloader.close()
        close_sink = getattr(self.delivery_sink, "close", None)
        if close_sink is not None:
            await close_sink()
        await self.engine.dispose()
        if close_redis:
            await self.redis.close()
        logger.info("container_stopped")
