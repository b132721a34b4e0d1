"""
ZIP packaging of finished batch items.

Only items in `done` status contribute an entry; everything else is skipped
without error. Entry names are not deduplicated, so two sources that map to
the same name produce two entries with that name (zipfile warns about it).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
import logging
import re
from typing import List, Optional, Tuple
import zipfile

from . import config
from .batch_worker import Batch, ItemStatus
from .config import FORMAT_PRESETS
from .errors import ArchiveError

logger = logging.getLogger(__name__)

ARCHIVE_MEDIA_TYPE = "application/zip"

_EXTENSION_RE = re.compile(r"\.[^/.]+$")
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


@dataclass(frozen=True)
class ArchiveResult:
    filename: str
    data: bytes
    entries: Tuple[str, ...]
    media_type: str = ARCHIVE_MEDIA_TYPE


def strip_extension(name: str) -> str:
    """Drop the final `.ext` suffix of the last path segment, if any."""
    return _EXTENSION_RE.sub("", name)


def entry_name_for(original_name: str, target_format: str) -> str:
    return strip_extension(original_name) + FORMAT_PRESETS[target_format].extension


def _zip_timestamp(moment: datetime) -> Tuple[int, int, int, int, int, int]:
    stamp = (moment.year, moment.month, moment.day, moment.hour, moment.minute, moment.second)
    return max(stamp, _ZIP_EPOCH)


def build_archive(batch: Batch, filename: Optional[str] = None) -> ArchiveResult:
    """
    Serialize every done item of `batch` into one ZIP, in intake order.

    Raises:
        ArchiveError: when the container cannot be assembled. The batch is
            only read, so the download can simply be retried.
    """
    filename = filename or config.get_settings().archive_filename
    entries: List[str] = []
    buf = BytesIO()
    try:
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for item in batch:
                if item.status is not ItemStatus.DONE:
                    continue
                name = entry_name_for(item.original_name, item.encoded_with.target_format)
                info = zipfile.ZipInfo(name, date_time=_zip_timestamp(item.created_at))
                info.compress_type = zipfile.ZIP_DEFLATED
                zf.writestr(info, item.output_bytes)
                entries.append(name)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to build archive %s: %s", filename, exc)
        raise ArchiveError(f"Could not build archive: {exc}") from exc

    data = buf.getvalue()
    logger.info("Built archive %s entries=%d bytes=%d", filename, len(entries), len(data))
    return ArchiveResult(filename=filename, data=data, entries=tuple(entries))
