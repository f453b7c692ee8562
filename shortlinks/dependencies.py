"""Dependency injection with a singleton service manager.

This module provides a centralized way to inject the configured LinkStore,
SequenceAllocator and logger into every API endpoint, using a singleton for
shared resources to minimize per-request overhead.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from shortlinks.allocator import RedisSequenceAllocator, SequenceAllocator, SqlSequenceAllocator
from shortlinks.config import Settings, get_settings
from shortlinks.database import close_db, create_engine, create_session_factory
from shortlinks.enums import StoreBackend
from shortlinks.link_service import LinkService
from shortlinks.redis import close_redis, create_redis
from shortlinks.redis_store import RedisLinkStore
from shortlinks.store import LinkStore, SqlLinkStore


# ============================================================================
# SINGLETON SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Singleton service manager for shared resources.

    Owns the settings, the logger, the SQLAlchemy engine, the Redis client and
    the LinkStore/SequenceAllocator pair selected by ``STORE_BACKEND``.
    """

    _instance: Optional["ServiceManager"] = None
    _initialized: bool = False

    def __new__(cls) -> "ServiceManager":
        """Implement singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def initialize(
        self,
        settings: Settings | None = None,
        engine: AsyncEngine | None = None,
        cache: redis.Redis | None = None,
    ) -> None:
        """Initialize shared resources once at startup.

        ``engine`` and ``cache`` may be supplied by the caller (tests do);
        resources passed in are not disposed by ``cleanup``.
        """
        if self._initialized:
            return

        self.settings = settings or get_settings()
        self.logger = self._setup_logger()

        self._owns_engine = engine is None
        self._owns_cache = cache is None
        self.engine = engine if engine is not None else create_engine(self.settings)
        self.session_factory = create_session_factory(self.engine)
        self.cache = cache if cache is not None else create_redis(self.settings)

        self.store = self._setup_store()
        self.allocator = self._setup_allocator()
        self._initialized = True
        self.logger.info(f"Service manager initialized with '{self.settings.STORE_BACKEND}' store backend")

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlinks")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    def _setup_store(self) -> LinkStore:
        if self.settings.STORE_BACKEND is StoreBackend.REDIS:
            return RedisLinkStore(
                self.cache,
                history_enabled=self.settings.VISIT_HISTORY_ENABLED,
                history_limit=self.settings.VISIT_HISTORY_LIMIT,
                logger=self.logger,
            )
        return SqlLinkStore(
            self.session_factory,
            history_enabled=self.settings.VISIT_HISTORY_ENABLED,
            history_limit=self.settings.VISIT_HISTORY_LIMIT,
            logger=self.logger,
        )

    def _setup_allocator(self) -> SequenceAllocator:
        retry_options = {
            "max_attempts": self.settings.ALLOCATOR_MAX_ATTEMPTS,
            "retry_delay": self.settings.ALLOCATOR_RETRY_DELAY_SECONDS,
            "logger": self.logger,
        }
        if self.settings.STORE_BACKEND is StoreBackend.REDIS:
            return RedisSequenceAllocator(self.cache, **retry_options)
        return SqlSequenceAllocator(self.session_factory, **retry_options)

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if not self._initialized:
            return
        if self._owns_cache:
            await close_redis(self.cache)
        if self._owns_engine:
            await close_db(self.engine)
        self._initialized = False


# Global singleton instance
_service_manager = ServiceManager()


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request context with tracking and observability.

    Attributes:
        service_manager: Singleton service manager with shared resources
        request_id: Unique identifier for this request
        trace_id: Correlation ID for distributed tracing
        user_agent: Client user agent string
        referrer: Referer header of the request
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def store(self) -> LinkStore:
        return self.service_manager.store

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get shared logger with request context."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager._initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
        client_ip=request.client.host if request.client else None,
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    return LinkService.from_context(ctx)
