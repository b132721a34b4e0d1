"""Exception types raised by the optimizer pipeline."""

from __future__ import annotations


class OptimizerError(Exception):
    """Base class for all optimizer failures."""


class TranscodeError(OptimizerError, ValueError):
    """A single image could not be transcoded. Recorded per item, never fatal to a batch."""


class DecodeError(TranscodeError):
    """Input bytes are not a supported image, or are truncated/corrupt."""


class InvalidDimensionsError(TranscodeError):
    """Decoded bitmap has a zero or negative edge."""


class EncodeError(TranscodeError):
    """The codec rejected the target format or quality."""


class ArchiveError(OptimizerError):
    """Assembling the download archive failed. Batch state is left untouched."""


class BatchInProgressError(OptimizerError, RuntimeError):
    """A batch run was requested while another one still has items processing."""
