"""
Commit to tree resolution.
"""

from __future__ import annotations

import logging

from .cache import MemoCache
from .errors import ObjectParseError
from .store import ObjectStore

logger = logging.getLogger(__name__)

TREE_PREFIX = b"tree "


class TreeResolver:
    """
    Resolves commit ids to the id of their root tree.

    Results are memoized per commit on top of the store's command cache, so a
    repeat lookup skips both the subprocess and the parse.
    """

    def __init__(self, store: ObjectStore, cache: MemoCache[str, str] | None = None):
        self.store = store
        self.cache: MemoCache[str, str] = cache if cache is not None else MemoCache()

    def resolve(self, commit_id: str, timeout: float | None = None) -> str:
        """
        Get the tree id a commit points to.

        Args:
            commit_id: Commit object id
            timeout: Seconds allowed for the metadata query on a miss

        Returns:
            The tree object id (not checked to actually name a tree)

        Raises:
            ObjectParseError: If the commit metadata has no tree line
            GitCommandError: If the metadata query fails
        """
        return self.cache.get_or_compute(
            commit_id, lambda: self._lookup(commit_id, timeout)
        )

    def _lookup(self, commit_id: str, timeout: float | None) -> str:
        metadata = self.store.commit_metadata(commit_id, timeout=timeout)

        for line in metadata.splitlines():
            if line.startswith(TREE_PREFIX):
                tokens = line[len(TREE_PREFIX):].split()
                if tokens:
                    tree_id = tokens[0].decode("ascii", errors="replace")
                    logger.debug("commit %s -> tree %s", commit_id, tree_id)
                    return tree_id

        raise ObjectParseError(
            ("git", "cat-file", "commit", commit_id),
            "no tree line in commit metadata",
        )
