# collage/infrastructure/providers/registry.py
import logging
from typing import Dict, Iterable, List, Optional

from collage.config.settings import Settings
from collage.domain.errors import UnsupportedProvider
from collage.infrastructure.providers.base import CollageProvider
from collage.infrastructure.providers.doubao_provider import DoubaoProvider
from collage.infrastructure.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Provider lookup by id, with a configured default."""

    def __init__(self, providers: Iterable[CollageProvider], default: str):
        self._providers: Dict[str, CollageProvider] = {p.id: p for p in providers}
        self.default = (default or "").strip().lower()

    @property
    def ids(self) -> List[str]:
        return list(self._providers)

    def get(self, provider_id: Optional[str] = None) -> CollageProvider:
        requested = (provider_id or "").strip().lower() or self.default
        provider = self._providers.get(requested)
        if provider is None:
            raise UnsupportedProvider(
                f"Unsupported provider: {requested}",
                details={"requested": requested, "supported": self.ids},
            )
        return provider


def build_registry(settings: Settings) -> ProviderRegistry:
    registry = ProviderRegistry(
        [OpenAIProvider(settings), DoubaoProvider(settings)],
        default=settings.COLLAGE_PROVIDER,
    )
    logger.info(f"Collage providers: {', '.join(registry.ids)} (default={registry.default})")
    return registry
