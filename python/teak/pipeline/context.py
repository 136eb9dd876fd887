"""Collaborators handed to every pipeline step.

Stages never reach for module-level clients. The worker builds one context
per task invocation and tests build one with fakes.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from teak.config import AIConfig, Settings, get_settings
from teak.db.models import to_epoch_ms, utcnow
from teak.pipeline.link_metadata.fetch import LinkFetcher
from teak.storage import StorageClientBase, get_storage_client


@dataclass
class PipelineContext:
    storage: StorageClientBase
    ai_config: AIConfig
    link_fetcher: LinkFetcher
    signed_url_expiry_s: int = 600
    clock: Callable[[], datetime] = field(default=utcnow)

    def now(self) -> datetime:
        return self.clock()

    def now_ms(self) -> int:
        return to_epoch_ms(self.clock())

    def close(self) -> None:
        self.link_fetcher.close()


def build_pipeline_context(
    settings: Settings | None = None,
    *,
    storage: StorageClientBase | None = None,
    link_fetcher: LinkFetcher | None = None,
) -> PipelineContext:
    """Build a context from settings, overriding any collaborator given."""
    settings = settings or get_settings()
    return PipelineContext(
        storage=storage or get_storage_client(),
        ai_config=settings.ai_config(),
        link_fetcher=link_fetcher or LinkFetcher(settings=settings),
        signed_url_expiry_s=settings.signed_url_expiry_s,
    )
