from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from .entities import RecommendationRequest, Track


class TokenProvider(Protocol):
    """Port for anything able to hand out a currently valid bearer token."""

    def get_token(self) -> str:
        """Return a usable token, raising AuthenticationError if none can be obtained."""


class MusicCatalog(Protocol):
    """Port defining the catalog resources the orchestrators depend on.

    Implementations return raw upstream payloads; mapping into domain entities is left
    to ``songscout.domain.normalization``.
    """

    def search_tracks(self, query: str, limit: int, market: Optional[str] = None) -> List[Dict[str, Any]]:
        """Return raw track items matching a free-text query."""

    def get_track(self, track_id: str) -> Dict[str, Any]:
        """Return the raw track resource."""

    def get_artist(self, artist_id: str) -> Dict[str, Any]:
        """Return the raw artist resource (genres included)."""

    def get_artist_top_tracks(self, artist_id: str, market: str) -> List[Dict[str, Any]]:
        """Return the artist's top tracks for a market, in catalog ranking order."""

    def get_audio_features(self, track_id: str) -> Dict[str, Any]:
        """Return tempo/key style audio features of a track."""

    def get_recommendations(self, **params: Any) -> List[Dict[str, Any]]:
        """Return raw tracks from the catalog's seed-based recommendation resource."""


class RecommendationStrategy(Protocol):
    """One way of turning a seed track into related tracks."""

    name: str

    def recommend(self, request: RecommendationRequest) -> List[Track]:
        """Return up to ``request.limit`` tracks, never including the seed itself."""
