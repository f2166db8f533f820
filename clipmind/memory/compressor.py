"""
Memory Compression
==================

Folds a long short-term history into one digest string that can be kept
in long-term memory after the short-term entries expire.
"""

from clipmind.memory.models import Memory

EXCERPT_LIMIT = 3
EXCERPT_CHARS = 100


class Compressor:
    """
    Template-based digest of a session's memories.

    Example:
        Compressor().compress(memories)
        # "Session contains 12 memories. Main content:
        #  - analyze BV1234567890
        #  - The video has 12,345 views and ...
        #  - what makes a good thumbnail?"
    """

    def __init__(self, excerpt_limit: int = EXCERPT_LIMIT, excerpt_chars: int = EXCERPT_CHARS):
        self.excerpt_limit = excerpt_limit
        self.excerpt_chars = excerpt_chars

    def _excerpt(self, content: str) -> str:
        if len(content) > self.excerpt_chars:
            return content[:self.excerpt_chars] + "..."
        return content

    def compress(self, memories: list[Memory]) -> str:
        lines = [f"Session contains {len(memories)} memories. Main content:"]
        for memory in memories[:self.excerpt_limit]:
            lines.append(f"- {self._excerpt(memory.content)}")
        return "\n".join(lines)
