"""Pure-Python building blocks for EROFS image tooling: xxHash, SHA-256,
rolling hash, UUIDs, a thread work queue, buffered stream reading, tar header
parsing and a size-bounded raw DEFLATE encoder."""

__version__ = "0.1.0"