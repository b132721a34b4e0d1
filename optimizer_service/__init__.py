"""
Batch image optimizer package.

Exposes reusable primitives for decoding, longest-edge resizing, encoding to
a fixed target format, running a whole batch concurrently, and packaging the
results into a single ZIP download.
"""
