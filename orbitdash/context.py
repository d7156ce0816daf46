"""
Application Context

Holds the process-wide singletons: one database handle, one metrics
pipeline and one service registry. Built once at startup by the app
lifespan and torn down once at shutdown.
"""

from dataclasses import dataclass, field

from .common.config import Settings
from .common.logging_setup import get_service_logger
from .services.metrics import BroadcastHub, CollectionLoop, RetentionStore, Sampler
from .services.registry import IconManager, ServiceRegistry
from .storage import Database

logger = get_service_logger("context")


@dataclass
class AppContext:
    """Wiring of every long-lived component"""
    settings: Settings
    db: Database
    sampler: Sampler
    store: RetentionStore
    hub: BroadcastHub
    collector: CollectionLoop
    icons: IconManager
    registry: ServiceRegistry
    _started: bool = field(default=False, repr=False)

    @classmethod
    def create(cls, settings: Settings) -> "AppContext":
        db = Database(settings.db_path)
        sampler = Sampler(proc_root=settings.proc_root, disk_path=settings.disk_path)
        store = RetentionStore(db, retention_seconds=settings.retention_s)
        hub = BroadcastHub()
        collector = CollectionLoop(
            sampler, store, hub, interval_seconds=settings.sample_interval_s
        )
        icons = IconManager(settings.icons_dir, timeout=settings.icon_fetch_timeout_s)
        registry = ServiceRegistry(db, icons)
        return cls(
            settings=settings,
            db=db,
            sampler=sampler,
            store=store,
            hub=hub,
            collector=collector,
            icons=icons,
            registry=registry,
        )

    async def start(self) -> None:
        """Start background work. Idempotent."""
        if self._started:
            return
        self._started = True

        try:
            self.registry.cleanup_orphaned_icons()
        except OSError as e:
            logger.warning(f"Orphaned icon cleanup failed: {e}")

        await self.collector.start()
        logger.info(f"Data directory: {self.settings.data_dir}")

    async def stop(self) -> None:
        """Stop background work. Idempotent."""
        if not self._started:
            return
        self._started = False
        await self.collector.stop()
