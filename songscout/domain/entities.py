from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


TOKEN_SAFETY_MARGIN_SEC = 60.0
MAX_CATALOG_LIMIT = 50


@dataclass(frozen=True)
class Credential:
    """Bearer token issued by the catalog's client-credentials exchange."""

    token: str
    expires_at: float

    def is_usable(self, now: float, margin: float = TOKEN_SAFETY_MARGIN_SEC) -> bool:
        """True while the token will not expire within ``margin`` seconds."""
        return bool(self.token) and now < self.expires_at - margin


@dataclass(frozen=True)
class Track:
    """Domain entity representing a catalog track in its canonical shape."""

    id: str
    name: str = ""
    artists: Tuple[str, ...] = ()
    album: str = ""
    image_url: Optional[str] = None
    preview_url: Optional[str] = None
    duration_ms: Optional[int] = None
    release_date: Optional[str] = None
    external_urls: Optional[Dict[str, str]] = field(default=None, compare=False, hash=False)

    def __post_init__(self):
        if not isinstance(self.artists, tuple):
            object.__setattr__(self, 'artists', tuple(self.artists or ()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'artists': list(self.artists),
            'album': self.album,
            'imageUrl': self.image_url,
            'previewUrl': self.preview_url,
        }

    def to_detail_dict(self) -> Dict[str, Any]:
        """Wire shape of the track-detail endpoint, with the extended fields."""
        data = self.to_dict()
        data.update({
            'duration_ms': self.duration_ms,
            'release_date': self.release_date,
            'external_urls': dict(self.external_urls) if self.external_urls else None,
        })
        return data


@dataclass(frozen=True)
class Suggestion:
    """Lightweight projection of a track used by autocomplete."""

    id: str
    name: str
    artist: str

    def to_dict(self) -> Dict[str, str]:
        return {'id': self.id, 'name': self.name, 'artist': self.artist}


@dataclass(frozen=True)
class SearchQuery:
    """Free-text track search."""

    text: str
    limit: int = 10


@dataclass(frozen=True)
class RecommendationRequest:
    """Request for tracks related to a seed track."""

    seed_track_id: str
    limit: int = 8
