"""
Session facade used by presentation-layer collaborators.

Endpoints:
 - add_files: intake of (name, bytes) pairs
 - run: transcode everything pending
 - download: archive bytes plus the fixed output filename
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from . import config
from .archive import ArchiveResult, build_archive
from .batch_worker import Batch, BatchOrchestrator, BatchSummary, ImageItem
from .config import EncodingPolicy
from .preprocessing import ImageDecoder

logger = logging.getLogger(__name__)


def configure_logging(settings: Optional[config.Settings] = None) -> None:
    settings = settings or config.get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))


class OptimizerSession:
    def __init__(
        self,
        settings: Optional[config.Settings] = None,
        policy: Optional[EncodingPolicy] = None,
        decoder: Optional[ImageDecoder] = None,
    ):
        self.settings = settings or config.get_settings()
        configure_logging(self.settings)
        self.policy = policy or EncodingPolicy.from_settings(self.settings)
        self.batch = Batch()
        self.orchestrator = BatchOrchestrator(policy=self.policy, decoder=decoder, settings=self.settings)

    def add_files(self, files: Iterable[Tuple[str, bytes]]) -> List[ImageItem]:
        items = self.batch.extend(files)
        logger.info("Accepted %d file(s); batch size=%d", len(items), len(self.batch))
        return items

    @property
    def is_running(self) -> bool:
        return self.batch.in_flight

    async def run(self) -> BatchSummary:
        """Transcode all pending items; raises BatchInProgressError if already running."""
        await self.orchestrator.run_batch(self.batch, self.policy)
        return self.batch.summary()

    def download(self) -> ArchiveResult:
        return build_archive(self.batch, self.settings.archive_filename)

    def summary(self) -> BatchSummary:
        return self.batch.summary()

    def failed_items(self) -> List[ImageItem]:
        return self.batch.failed_items()

    def retry_failed(self) -> int:
        return self.batch.reset_failed()
