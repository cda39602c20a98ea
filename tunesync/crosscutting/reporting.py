import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from tunesync.domain.entities import Resolution, ResolutionStatus, UnresolvedEntry

PHASE_LIBRARY = "library"
PHASE_PLAYLISTS = "playlists"


def unresolved_from(resolution: Resolution, phase: str,
                    playlist: Optional[str] = None) -> UnresolvedEntry:
    """Turn a failed resolution into an entry of the unresolved list."""
    if resolution.status is ResolutionStatus.FOUND:
        raise ValueError("resolution was found, nothing to report")
    return UnresolvedEntry(
        track=resolution.track,
        phase=phase,
        reason=resolution.status.value,
        playlist=playlist,
        detail=resolution.error,
    )


@dataclass
class ReportHeader:
    """Header information for an unresolved-tracks report."""

    user_id: Optional[str] = None
    library_path: Optional[str] = None
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    dry_run: bool = False

    def to_json(self) -> Dict[str, Any]:
        """Serialize header to JSON."""
        return {
            "userId": self.user_id,
            "libraryPath": self.library_path,
            "generatedAt": self.generated_at.isoformat(),
            "dryRun": self.dry_run,
        }


@dataclass
class UnresolvedReport:
    """Tracks that need manual follow-up after a migration."""

    header: ReportHeader
    entries: List[UnresolvedEntry]
    totals: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def to_json(self) -> Dict[str, Any]:
        """Serialize report to JSON."""
        return {
            "header": self.header.to_json(),
            "totals": dict(self.totals),
            "unresolved": [
                {
                    "persistentId": e.track.persistent_id,
                    "artist": e.track.artist,
                    "name": e.track.name,
                    "album": e.track.album,
                    "kind": "playlist_item" if e.is_playlist_item else "track",
                    "phase": e.phase,
                    "playlist": e.playlist,
                    "reason": e.reason,
                    "detail": e.detail,
                }
                for e in self.entries
            ],
        }

    def write_json(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_json(), f, indent=2, ensure_ascii=False)


def build_report(entries: Sequence[UnresolvedEntry],
                 header: Optional[ReportHeader] = None) -> UnresolvedReport:
    """Create a report over the unresolved list, keeping order and duplicates."""
    totals = {"total": len(entries), "not_found": 0, "error": 0,
              PHASE_LIBRARY: 0, PHASE_PLAYLISTS: 0}
    for entry in entries:
        totals[entry.reason] = totals.get(entry.reason, 0) + 1
        totals[entry.phase] = totals.get(entry.phase, 0) + 1
    return UnresolvedReport(header=header or ReportHeader(), entries=list(entries), totals=totals)


def format_entry(entry: UnresolvedEntry) -> str:
    track = entry.track
    line = f"{track.persistent_id or '-'}\t{track.artist} - {track.name}\t{entry.phase}\t{entry.reason}"
    if entry.playlist:
        line += f"\t(playlist: {entry.playlist})"
    if entry.reason == ResolutionStatus.ERROR.value:
        line += f"\t[error: {entry.detail}]"
    return line


def render_text(report: UnresolvedReport) -> str:
    """Human-readable enumeration of the unresolved tracks."""
    if not report.entries:
        return "All tracks were found."
    lines = ["Unable to find these tracks, try adding manually:"]
    lines.extend(format_entry(e) for e in report.entries)
    return "\n".join(lines)
