import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from tunesync.application.cache import TrackCache
from tunesync.application.matching import TrackResolver, summarize
from tunesync.crosscutting.config import MigrationConfig
from tunesync.crosscutting.logging import MigrationContext
from tunesync.crosscutting.reporting import (
    PHASE_LIBRARY, PHASE_PLAYLISTS, ReportHeader, UnresolvedReport, build_report, unresolved_from,
)
from tunesync.domain.entities import (
    ChunkOutcome, Library, Playlist, RemotePlaylist, RemoteUser, Resolution, Track, UnresolvedEntry,
)
from tunesync.domain.errors import AuthError, RemoteCallError
from tunesync.domain.ports import RemoteLibrary

logger = logging.getLogger(__name__)

DRY_RUN_PLAYLIST_ID = "dry-run"


@dataclass
class PlaylistOutcome:
    """What happened to one local playlist."""

    name: str
    remote_id: Optional[str] = None
    created: bool = False
    skipped: bool = False
    error: Optional[str] = None
    resolved: int = 0
    unresolved: int = 0
    chunks: List[ChunkOutcome] = field(default_factory=list)


@dataclass
class CleanupOutcome:
    """Result of removing the user's existing remote playlists."""

    listed: int = 0
    removed: int = 0
    failed: int = 0
    error: Optional[str] = None


@dataclass
class MigrationResult:
    """Everything a migration run produced.

    ``unresolved`` keeps the order in which failures happened and is never
    deduplicated: a track missed in the library phase and again through a
    playlist shows up twice.
    """

    user: RemoteUser
    dry_run: bool = False
    cleanup: CleanupOutcome = field(default_factory=CleanupOutcome)
    library_resolved: int = 0
    library_chunks: List[ChunkOutcome] = field(default_factory=list)
    playlists: List[PlaylistOutcome] = field(default_factory=list)
    unresolved: List[UnresolvedEntry] = field(default_factory=list)
    cache_stats: Dict[str, int] = field(default_factory=dict)
    searches: int = 0
    duration_ms: int = 0

    @property
    def failed_chunks(self) -> int:
        chunks = list(self.library_chunks)
        for outcome in self.playlists:
            chunks.extend(outcome.chunks)
        return sum(1 for c in chunks if not c.ok)

    def report(self, library_path: Optional[str] = None) -> UnresolvedReport:
        header = ReportHeader(user_id=self.user.id, library_path=library_path, dry_run=self.dry_run)
        return build_report(self.unresolved, header)


class ProgressTracker:
    """Logs resolution progress every ``every`` tracks."""

    def __init__(self, total: int, label: str, every: int = 100):
        self.total = total
        self.label = label
        self.every = every
        self.processed = 0
        self.found = 0
        self.start_time = time.time()

    def update(self, resolution: Resolution) -> None:
        self.processed += 1
        if resolution.found:
            self.found += 1
        if self.processed % self.every == 0 or self.processed == self.total:
            elapsed_sec = time.time() - self.start_time
            progress_pct = (self.processed / self.total) * 100 if self.total else 100.0
            logger.info(f"{self.label}: {self.processed}/{self.total} tracks ({progress_pct:.1f}%) "
                        f"resolved in {elapsed_sec:.1f}s, found {self.found}")


def split_into_chunks(items: Sequence, chunk_size: int) -> List[list]:
    """Split a sequence into consecutive chunks of at most ``chunk_size``.

    Args:
        items: Sequence to split
        chunk_size: Maximum chunk length, must be positive

    Returns:
        List of chunks; the last one carries the remainder
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [list(items[i:i + chunk_size]) for i in range(0, len(items), chunk_size)]


class BatchSubmitter:
    """Submits chunks of remote ids, one remote call per chunk.

    A failing chunk is logged and recorded; it never stops later chunks.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def submit(self, index: int, ids: Sequence[str], send: Callable[[Sequence[str]], None],
               description: str) -> ChunkOutcome:
        """Send one chunk.

        Args:
            index: Position of the chunk within its sequence
            ids: Remote track ids in the chunk
            send: Remote call taking the ids
            description: Destination, for log lines

        Returns:
            ChunkOutcome telling whether the call succeeded
        """
        if self.dry_run:
            logger.info(f"DRY-RUN: Would add {len(ids)} tracks to {description}")
            return ChunkOutcome(index=index, size=len(ids), ok=True)

        logger.info(f"Adding {len(ids)} tracks to {description}")
        try:
            send(ids)
        except RemoteCallError as e:
            logger.error(f"Unable to add chunk {index} ({len(ids)} tracks) to {description}: {e}")
            return ChunkOutcome(index=index, size=len(ids), ok=False, error=str(e))
        return ChunkOutcome(index=index, size=len(ids), ok=True)


class LibraryMigrator:
    """Recreates a local library in the remote account.

    Phases run strictly in order: verify the credential, clear existing
    remote playlists, resolve and save every library track, recreate every
    playlist, report what could not be migrated. Only the verification can
    stop the run; everything else degrades into an unresolved entry or a
    logged failure.
    """

    def __init__(self,
                 remote: RemoteLibrary,
                 config: Optional[MigrationConfig] = None,
                 resolver: Optional[TrackResolver] = None,
                 cache: Optional[TrackCache] = None):
        """Initialize the migrator.

        Args:
            remote: Remote library and catalog
            config: Run configuration, defaults when omitted
            resolver: Track resolver; built over ``remote`` when omitted
            cache: Cache shared by the library and playlist phases
        """
        self.remote = remote
        self.config = config or MigrationConfig()
        if resolver is None:
            resolver = TrackResolver(remote, cache if cache is not None else TrackCache())
        self.resolver = resolver
        self.cache = resolver.cache
        self.submitter = BatchSubmitter(dry_run=self.config.dry_run)

    def migrate(self, library: Library) -> MigrationResult:
        """Run every phase against the given library.

        Raises:
            AuthError: If the credential cannot be verified
        """
        start = time.time()
        user = self.verify()
        result = MigrationResult(user=user, dry_run=self.config.dry_run)

        if self.config.clear_playlists:
            with MigrationContext(phase="cleanup"):
                result.cleanup = self.clear_playlists(user)
        else:
            logger.info("Skipping cleanup of existing playlists")

        with MigrationContext(phase=PHASE_LIBRARY):
            resolved, chunks, unresolved = self.migrate_tracks(library.tracks)
        result.library_resolved = len(resolved)
        result.library_chunks = chunks
        result.unresolved.extend(unresolved)

        with MigrationContext(phase=PHASE_PLAYLISTS):
            logger.info("Recreate all playlists.")
            for playlist in library.playlists:
                with MigrationContext(playlist=playlist.name):
                    outcome, unresolved = self.migrate_playlist(user, playlist)
                result.playlists.append(outcome)
                result.unresolved.extend(unresolved)

        result.cache_stats = self.cache.stats()
        result.searches = self.resolver.searches
        result.duration_ms = int((time.time() - start) * 1000)

        created = sum(1 for p in result.playlists if p.created)
        logger.info(f"Migration completed: {result.library_resolved}/{len(library.tracks)} library tracks found, "
                    f"{created}/{len(library.playlists)} playlists created, "
                    f"{len(result.unresolved)} unresolved, {result.failed_chunks} failed chunks, "
                    f"{result.searches} searches")
        return result

    def verify(self) -> RemoteUser:
        """Confirm the credential by fetching the current user."""
        try:
            user = self.remote.authenticate()
        except RemoteCallError as e:
            raise AuthError(f"Could not verify credential: {e}") from e
        logger.info(f"Logged in as {user.display_name or '-'} (user id: {user.id})")
        return user

    def clear_playlists(self, user: RemoteUser) -> CleanupOutcome:
        """Unfollow every playlist currently in the user's library."""
        outcome = CleanupOutcome()
        try:
            playlists = self.remote.list_playlists(user.id, paginate=self.config.cleanup_paginate)
        except RemoteCallError as e:
            logger.error(f"Unable to list existing playlists: {e}")
            outcome.error = str(e)
            return outcome

        outcome.listed = len(playlists)
        logger.info(f"Removing {len(playlists)} existing playlists")
        for playlist in playlists:
            if self.config.dry_run:
                logger.info(f"DRY-RUN: Would unfollow playlist {playlist.name} ({playlist.id})")
                outcome.removed += 1
                continue
            try:
                self.remote.unfollow_playlist(user.id, playlist.id)
                outcome.removed += 1
            except RemoteCallError as e:
                logger.error(f"Unable to unfollow playlist {playlist.name} ({playlist.id}): {e}")
                outcome.failed += 1
        return outcome

    def migrate_tracks(self, tracks: Sequence[Track]) -> Tuple[List[str], List[ChunkOutcome], List[UnresolvedEntry]]:
        """Resolve every library track, then save the found ones in chunks.

        Returns:
            Resolved remote ids in library order, chunk outcomes and the
            tracks that could not be resolved
        """
        logger.info("Searching for equivalent tracks.")
        progress = ProgressTracker(len(tracks), "Library")
        resolutions = []
        found: List[str] = []
        unresolved: List[UnresolvedEntry] = []

        for track in tracks:
            resolution = self.resolver.resolve_cached(track)
            resolutions.append(resolution)
            progress.update(resolution)
            if resolution.found:
                found.append(resolution.remote_id)
            else:
                unresolved.append(unresolved_from(resolution, PHASE_LIBRARY))

        logger.info(f"Library resolution summary: {summarize(resolutions)}")

        chunks = [
            self.submitter.submit(index, chunk, self.remote.add_tracks_to_library, "library")
            for index, chunk in enumerate(split_into_chunks(found, self.config.library_chunk_size))
        ]
        return found, chunks, unresolved

    def migrate_playlist(self, user: RemoteUser, playlist: Playlist) -> Tuple[PlaylistOutcome, List[UnresolvedEntry]]:
        """Create one remote playlist and fill it chunk by chunk."""
        outcome = PlaylistOutcome(name=playlist.name)
        unresolved: List[UnresolvedEntry] = []

        if self._should_skip(playlist):
            logger.info(f"Skipping playlist {playlist.name}")
            outcome.skipped = True
            return outcome, unresolved

        remote_playlist = self._create_playlist(user, playlist, outcome)
        if remote_playlist is None:
            return outcome, unresolved

        description = f"{remote_playlist.name} ({remote_playlist.id})"
        for index, items in enumerate(split_into_chunks(playlist.items, self.config.playlist_chunk_size)):
            ids: List[str] = []
            for item in items:
                resolution = self.resolver.resolve_cached(item)
                if resolution.found:
                    ids.append(resolution.remote_id)
                else:
                    unresolved.append(unresolved_from(resolution, PHASE_PLAYLISTS, playlist.name))
            outcome.resolved += len(ids)
            outcome.unresolved += len(items) - len(ids)

            if not ids:
                logger.warning(f"No tracks resolved in chunk {index} of {description}")
                continue

            outcome.chunks.append(self.submitter.submit(
                index, ids,
                lambda chunk: self.remote.add_tracks_to_playlist(user.id, remote_playlist.id, chunk),
                description,
            ))

        return outcome, unresolved

    def _should_skip(self, playlist: Playlist) -> bool:
        if not self.config.skip_system_playlists:
            return False
        return playlist.is_system or playlist.is_folder

    def _create_playlist(self, user: RemoteUser, playlist: Playlist,
                         outcome: PlaylistOutcome) -> Optional[RemotePlaylist]:
        if self.config.dry_run:
            logger.info(f"DRY-RUN: Would create playlist {playlist.name}")
            return RemotePlaylist(id=DRY_RUN_PLAYLIST_ID, name=playlist.name, owner_id=user.id)

        try:
            remote_playlist = self.remote.create_playlist(user.id, playlist.name,
                                                          public=self.config.playlist_public)
        except RemoteCallError as e:
            logger.error(f"Unable to create playlist {playlist.name}: {e}")
            outcome.error = str(e)
            return None

        outcome.created = True
        outcome.remote_id = remote_playlist.id
        return remote_playlist
