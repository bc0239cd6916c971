"""Heading-aware document chunking.

Documents are split before markdown headings (``#``, ``##``, ``###``) so each chunk
tends to hold one semantic section. Oversized sections are cut into fixed windows
and tiny fragments are dropped as noise. Chunk order always follows document order.
"""

import re
from typing import Iterator, List, Optional

from loguru import logger

from mountaingraph.utils.config import ChunkingConfig

# Zero-width split point in front of a line starting with 1-3 '#' and whitespace.
_HEADING_BOUNDARY = re.compile(r"(?=\n#{1,3}\s)")


class MarkdownChunker:
    """Split raw document text into bounded-size chunks.

    Example:
        >>> chunker = MarkdownChunker(ChunkingConfig(max_chars=8000, min_chars=100))
        >>> for chunk in chunker.iter_chunks(text):
        ...     extract(chunk)
    """

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()

        logger.debug(
            f"Initialized MarkdownChunker: max_chars={self.config.max_chars}, "
            f"min_chars={self.config.min_chars}"
        )

    def iter_chunks(self, text: str) -> Iterator[str]:
        """Lazily yield chunks of ``text`` in document order.

        The generator is single-use; call again with the same text to regenerate.
        """
        for section in _HEADING_BOUNDARY.split(text or ""):
            for window in self._windows(section):
                if len(window.strip()) > self.config.min_chars:
                    yield window

    def chunk_text(self, text: str) -> List[str]:
        """Materialize all chunks for ``text``."""
        return list(self.iter_chunks(text))

    def _windows(self, section: str) -> Iterator[str]:
        size = self.config.max_chars
        if len(section) <= size:
            yield section
            return
        for start in range(0, len(section), size):
            yield section[start : start + size]
