import logging
from dataclasses import dataclass

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import Settings
from app.repositories.user_repository import UserRepository
from app.utils.blob_storage import BlobStorage, create_blob_storage
from app.utils.realtime_bus import RealtimeGateway, create_gateway
from app.utils.websocket_manager import PresenceRegistry


logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Process-lifetime realtime state, built once at startup and injected into handlers."""

    settings: Settings
    registry: PresenceRegistry
    gateway: RealtimeGateway
    blob_storage: BlobStorage

    def shutdown(self) -> None:
        self.gateway.shutdown()


def build_runtime(settings: Settings, db: AsyncIOMotorDatabase) -> Runtime:
    registry = PresenceRegistry()
    gateway = create_gateway(
        settings.realtime_enabled,
        registry,
        UserRepository(db),
        typing_timeout=settings.typing_timeout_seconds,
    )
    blob_storage = create_blob_storage(
        settings.blob_bucket,
        prefix=settings.blob_prefix,
        public_base_url=settings.blob_public_base_url,
    )
    logger.info("Runtime ready (realtime=%s, blob=%s)", gateway.enabled, type(blob_storage).__name__)
    return Runtime(settings=settings, registry=registry, gateway=gateway, blob_storage=blob_storage)
