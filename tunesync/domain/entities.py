from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class Track:
    """Local track record decoded from a library document."""

    persistent_id: str = ""
    artist: str = ""
    name: str = ""
    track_id: Optional[int] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    genre: Optional[str] = None
    total_time_ms: Optional[int] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    kind: Optional[str] = None
    location: Optional[str] = None

    @property
    def search_query(self) -> str:
        return self.artist + " " + self.name


@dataclass(frozen=True)
class PlaylistItem(Track):
    """Playlist entry carrying a denormalized copy of the referenced track."""


@dataclass(frozen=True)
class Playlist:
    """Local playlist with its ordered items."""

    name: str
    items: Tuple[PlaylistItem, ...] = ()
    persistent_id: Optional[str] = None
    is_master: bool = False
    distinguished_kind: Optional[int] = None
    is_folder: bool = False
    is_smart: bool = False

    @property
    def is_system(self) -> bool:
        return self.is_master or self.distinguished_kind is not None


@dataclass(frozen=True)
class Library:
    """Root aggregate of a parsed library document."""

    tracks: Tuple[Track, ...] = ()
    playlists: Tuple[Playlist, ...] = ()
    major_version: Optional[int] = None
    minor_version: Optional[int] = None
    application_version: Optional[str] = None
    music_folder: Optional[str] = None
    library_persistent_id: Optional[str] = None


@dataclass(frozen=True)
class RemoteUser:
    """Profile of the authenticated remote account."""

    id: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class RemotePlaylist:
    """Playlist as seen by the remote service."""

    id: str
    name: str
    owner_id: Optional[str] = None


class ResolutionStatus(str, Enum):
    """Outcome of resolving one local track."""

    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class Resolution:
    """Tagged result of a track resolution."""

    track: Track
    status: ResolutionStatus
    remote_id: Optional[str] = None
    error: Optional[str] = None
    cached: bool = False

    @property
    def found(self) -> bool:
        return self.status is ResolutionStatus.FOUND

    @classmethod
    def hit(cls, track: Track, remote_id: str, cached: bool = False) -> "Resolution":
        return cls(track=track, status=ResolutionStatus.FOUND, remote_id=remote_id, cached=cached)

    @classmethod
    def miss(cls, track: Track) -> "Resolution":
        return cls(track=track, status=ResolutionStatus.NOT_FOUND)

    @classmethod
    def failed(cls, track: Track, error: str) -> "Resolution":
        return cls(track=track, status=ResolutionStatus.ERROR, error=error)


@dataclass(frozen=True)
class ChunkOutcome:
    """Result of submitting one batch of remote ids."""

    index: int
    size: int
    ok: bool
    error: Optional[str] = None


@dataclass
class UnresolvedEntry:
    """A track that did not make it to the remote service."""

    track: Track
    phase: str
    reason: str
    playlist: Optional[str] = None
    detail: Optional[str] = None

    @property
    def is_playlist_item(self) -> bool:
        return isinstance(self.track, PlaylistItem)
