import logging
from typing import Dict, Iterable, Optional

from tunesync.application.cache import TrackCache
from tunesync.domain.entities import Resolution, ResolutionStatus, Track
from tunesync.domain.errors import RemoteCallError
from tunesync.domain.ports import RemoteLibrary

logger = logging.getLogger(__name__)


class TrackResolver:
    """Maps local tracks to remote catalog ids.

    The remote catalog owns ranking: the first search result is taken as the
    match and no confidence threshold is applied locally. Search failures are
    reported as ``ERROR`` resolutions and never retried here.
    """

    def __init__(self, remote: RemoteLibrary, cache: Optional[TrackCache] = None):
        """Initialize the resolver.

        Args:
            remote: Remote catalog used for searches
            cache: Cache shared across every phase of a run
        """
        self.remote = remote
        self.cache = cache if cache is not None else TrackCache()
        self.searches = 0

    def resolve(self, track: Track) -> Resolution:
        """Search the remote catalog for a track, ignoring the cache.

        Args:
            track: Local track or playlist item

        Returns:
            Resolution tagged FOUND, NOT_FOUND or ERROR
        """
        query = track.search_query
        logger.info(f"Searching for: {query}")
        self.searches += 1

        try:
            results = self.remote.search(query, type="track")
        except RemoteCallError as e:
            logger.error(f"Search failed for '{query}': {e}")
            return Resolution.failed(track, str(e))

        if not results:
            logger.debug(f"No match for '{query}' ({track.persistent_id})")
            return Resolution.miss(track)

        return Resolution.hit(track, results[0])

    def resolve_cached(self, track: Track) -> Resolution:
        """Resolve through the cache, searching only on a miss.

        Successful searches populate the cache; misses and errors do not, so a
        later reference to the same track searches again.
        """
        if not track.persistent_id:
            return self.resolve(track)

        fresh = []

        def _search() -> Optional[str]:
            resolution = self.resolve(track)
            fresh.append(resolution)
            return resolution.remote_id

        remote_id = self.cache.get_or_resolve(track.persistent_id, _search)
        if fresh:
            return fresh[0]
        return Resolution.hit(track, remote_id, cached=True)


def summarize(resolutions: Iterable[Resolution]) -> Dict[str, int]:
    """Count resolutions by outcome.

    Returns:
        Dictionary with total, found, cached, not_found and error counts
    """
    stats = {"total": 0, "found": 0, "cached": 0, "not_found": 0, "error": 0}
    for resolution in resolutions:
        stats["total"] += 1
        if resolution.status is ResolutionStatus.FOUND:
            stats["found"] += 1
            if resolution.cached:
                stats["cached"] += 1
        elif resolution.status is ResolutionStatus.NOT_FOUND:
            stats["not_found"] += 1
        else:
            stats["error"] += 1
    return stats
