from __future__ import annotations

from typing import List, Protocol, Sequence

from .entities import RemotePlaylist, RemoteUser

LIBRARY_BATCH_LIMIT = 50
PLAYLIST_BATCH_LIMIT = 100


class RemoteLibrary(Protocol):
    """Port for the remote catalog and library the migration writes into.

    The credential is bound when the implementation is constructed. Every
    operation other than ``authenticate`` reports failure by raising a
    ``RemoteCallError`` subclass.
    """

    def authenticate(self) -> RemoteUser:
        """Return the current user profile or raise ``AuthError``."""

    def list_playlists(self, user_id: str, paginate: bool = True) -> List[RemotePlaylist]:
        """Return the playlists in the user's library."""

    def unfollow_playlist(self, user_id: str, playlist_id: str) -> None:
        """Remove the playlist from the user's library."""

    def search(self, query: str, type: str = "track") -> List[str]:
        """Return remote ids matching the query, best ranked first."""

    def add_tracks_to_library(self, ids: Sequence[str]) -> None:
        """Save up to LIBRARY_BATCH_LIMIT tracks to the user's library."""

    def create_playlist(self, user_id: str, name: str, public: bool = False) -> RemotePlaylist:
        """Create a new, non-collaborative playlist."""

    def add_tracks_to_playlist(self, user_id: str, playlist_id: str, ids: Sequence[str]) -> None:
        """Append up to PLAYLIST_BATCH_LIMIT tracks to the playlist."""
