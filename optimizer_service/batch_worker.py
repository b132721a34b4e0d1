"""
Batch model and orchestrator.

A `Batch` keeps the user's images in intake order. `BatchOrchestrator` runs
the transcoding pipeline for every claimable item concurrently on the event
loop; one item's failure never affects another, and `run_batch` returns only
once every item it claimed has reached a terminal status.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
import uuid

from . import config
from .config import EncodingPolicy
from .errors import BatchInProgressError, TranscodeError
from .pipeline import TranscodeResult, transcode_image
from .preprocessing import ImageDecoder, PillowDecoder

logger = logging.getLogger(__name__)


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({ItemStatus.DONE, ItemStatus.FAILED, ItemStatus.CANCELLED})


@dataclass(eq=False)
class ImageItem:
    """
    One image in a batch.

    `source_bytes` is fixed at intake. `status`, `output_bytes` and the other
    result fields change only through the transition methods below, which
    keep `output_bytes` set exactly when the item is done.
    """

    original_name: str
    source_bytes: bytes
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.now)
    status: ItemStatus = ItemStatus.PENDING
    output_bytes: Optional[bytes] = None
    output_size: Optional[Tuple[int, int]] = None
    encoded_with: Optional[EncodingPolicy] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.source_bytes, bytes):
            self.source_bytes = bytes(self.source_bytes)

    @property
    def source_size(self) -> int:
        return len(self.source_bytes)

    @property
    def saved_bytes(self) -> int:
        if self.output_bytes is None:
            return 0
        return max(0, self.source_size - len(self.output_bytes))

    @property
    def saved_percent(self) -> float:
        if self.source_size <= 0:
            return 0.0
        return (self.saved_bytes / self.source_size) * 100.0

    def is_claimable(self, policy: EncodingPolicy) -> bool:
        if self.status is ItemStatus.PENDING:
            return True
        return self.status is ItemStatus.DONE and self.encoded_with != policy

    def claim(self, policy: EncodingPolicy) -> bool:
        """Move to processing if the item needs work under `policy`."""
        if not self.is_claimable(policy):
            return False
        self._clear_result()
        self.status = ItemStatus.PROCESSING
        return True

    def complete(self, result: TranscodeResult) -> None:
        if self.status is not ItemStatus.PROCESSING:
            raise RuntimeError(f"Cannot complete item {self.id} in status {self.status.value}")
        self.output_bytes = result.data
        self.output_size = result.output_size
        self.encoded_with = result.policy
        self.error = None
        self.status = ItemStatus.DONE

    def fail(self, message: str) -> None:
        self._clear_result()
        self.error = message
        self.status = ItemStatus.FAILED

    def cancel(self, message: str = "Cancelled") -> bool:
        if self.status is not ItemStatus.PROCESSING:
            return False
        self._clear_result()
        self.error = message
        self.status = ItemStatus.CANCELLED
        return True

    def reset(self) -> bool:
        if self.status not in (ItemStatus.FAILED, ItemStatus.CANCELLED):
            return False
        self._clear_result()
        self.status = ItemStatus.PENDING
        return True

    def _clear_result(self) -> None:
        self.output_bytes = None
        self.output_size = None
        self.encoded_with = None
        self.error = None


class BatchOutcome(str, Enum):
    EMPTY = "empty"
    INCOMPLETE = "incomplete"
    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL = "partial"
    ALL_FAILED = "all_failed"


@dataclass(frozen=True)
class BatchSummary:
    total: int
    pending: int
    processing: int
    done: int
    failed: int
    cancelled: int

    @property
    def outcome(self) -> BatchOutcome:
        if self.total == 0:
            return BatchOutcome.EMPTY
        if self.pending or self.processing:
            return BatchOutcome.INCOMPLETE
        if self.done == self.total:
            return BatchOutcome.ALL_SUCCEEDED
        if self.done == 0:
            return BatchOutcome.ALL_FAILED
        return BatchOutcome.PARTIAL


class Batch:
    """Ordered collection of images; iteration follows intake order."""

    def __init__(self, items: Optional[Iterable[ImageItem]] = None):
        self._items: List[ImageItem] = []
        self._by_id: Dict[str, ImageItem] = {}
        for item in items or ():
            self._append(item)

    def _append(self, item: ImageItem) -> ImageItem:
        if item.id in self._by_id:
            raise ValueError(f"Duplicate item id {item.id}")
        self._items.append(item)
        self._by_id[item.id] = item
        return item

    def add(self, original_name: str, source_bytes: bytes) -> ImageItem:
        return self._append(ImageItem(original_name=original_name, source_bytes=source_bytes))

    def extend(self, files: Iterable[Tuple[str, bytes]]) -> List[ImageItem]:
        return [self.add(name, data) for name, data in files]

    def get(self, item_id: str) -> ImageItem:
        return self._by_id[item_id]

    def __iter__(self) -> Iterator[ImageItem]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def items_with_status(self, *statuses: ItemStatus) -> List[ImageItem]:
        return [item for item in self._items if item.status in statuses]

    def done_items(self) -> List[ImageItem]:
        return self.items_with_status(ItemStatus.DONE)

    def failed_items(self) -> List[ImageItem]:
        return self.items_with_status(ItemStatus.FAILED, ItemStatus.CANCELLED)

    @property
    def in_flight(self) -> bool:
        return any(item.status is ItemStatus.PROCESSING for item in self._items)

    def reset_failed(self) -> int:
        """Return failed and cancelled items to pending; returns how many."""
        return sum(1 for item in self._items if item.reset())

    def summary(self) -> BatchSummary:
        counts = {status: 0 for status in ItemStatus}
        for item in self._items:
            counts[item.status] += 1
        return BatchSummary(
            total=len(self._items),
            pending=counts[ItemStatus.PENDING],
            processing=counts[ItemStatus.PROCESSING],
            done=counts[ItemStatus.DONE],
            failed=counts[ItemStatus.FAILED],
            cancelled=counts[ItemStatus.CANCELLED],
        )


class BatchOrchestrator:
    """
    Runs decode -> resize -> encode for every claimable item of a batch.

    Example:
        orchestrator = BatchOrchestrator()
        await orchestrator.run_batch(batch)
        archive = build_archive(batch)
    """

    def __init__(
        self,
        policy: Optional[EncodingPolicy] = None,
        decoder: Optional[ImageDecoder] = None,
        item_timeout: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        settings: Optional[config.Settings] = None,
    ):
        settings = settings or config.get_settings()
        self.policy: EncodingPolicy = policy or EncodingPolicy.from_settings(settings)
        self.decoder: ImageDecoder = decoder or PillowDecoder()
        self.item_timeout: Optional[float] = (
            item_timeout if item_timeout is not None else settings.item_timeout_seconds
        )
        self.max_concurrency: Optional[int] = (
            max_concurrency if max_concurrency is not None else settings.max_concurrency
        )

    async def run_batch(self, batch: Batch, policy: Optional[EncodingPolicy] = None) -> Batch:
        """
        Process every pending item (and done items encoded under another policy).

        Claiming happens before the first suspension point, so two overlapping
        calls can never pick up the same item.

        Raises:
            BatchInProgressError: if items of this batch are still processing.
        """
        policy = policy or self.policy
        if batch.in_flight:
            raise BatchInProgressError("A batch run is already in progress")

        claimed = [item for item in batch if item.claim(policy)]
        if not claimed:
            logger.info("Batch run: nothing to process (items=%d)", len(batch))
            return batch

        logger.info(
            "Batch run started items=%d max_dim=%d format=%s quality=%.2f",
            len(claimed),
            policy.max_dimension,
            policy.target_format,
            policy.quality,
        )
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        try:
            await asyncio.gather(*(self._process_item(item, policy, semaphore) for item in claimed))
        except asyncio.CancelledError:
            cancelled = sum(1 for item in claimed if item.cancel("Batch run cancelled"))
            logger.warning("Batch run cancelled; %d item(s) marked cancelled", cancelled)
            raise

        summary = batch.summary()
        logger.info(
            "Batch run finished outcome=%s done=%d failed=%d cancelled=%d",
            summary.outcome.value,
            summary.done,
            summary.failed,
            summary.cancelled,
        )
        return batch

    async def _process_item(
        self,
        item: ImageItem,
        policy: EncodingPolicy,
        semaphore: Optional[asyncio.Semaphore],
    ) -> None:
        if semaphore is None:
            await self._transcode_item(item, policy)
            return
        async with semaphore:
            await self._transcode_item(item, policy)

    async def _transcode_item(self, item: ImageItem, policy: EncodingPolicy) -> None:
        logger.debug("Processing item id=%s name=%s bytes=%d", item.id, item.original_name, item.source_size)
        work = transcode_image(item.source_bytes, policy, decoder=self.decoder)
        try:
            if self.item_timeout:
                result = await asyncio.wait_for(work, timeout=self.item_timeout)
            else:
                result = await work
        except asyncio.TimeoutError:
            item.fail(f"Timed out after {self.item_timeout:g}s")
            logger.warning("Item %s (%s) timed out", item.id, item.original_name)
        except TranscodeError as exc:
            item.fail(str(exc))
            logger.warning("Item %s (%s) failed: %s", item.id, item.original_name, exc)
        except Exception as exc:  # noqa: BLE001
            item.fail(f"Unexpected error: {exc}")
            logger.exception("Item %s (%s) failed unexpectedly", item.id, item.original_name)
        else:
            item.complete(result)
            logger.debug(
                "Item %s done size=%dx%d saved=%.1f%%",
                item.id,
                result.output_size[0],
                result.output_size[1],
                item.saved_percent,
            )
