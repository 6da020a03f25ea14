"""Recommendation pipelines.

Both strategies anchor on a seed track and run their catalog calls strictly in
dependency order: the seed's primary artist must be known before anything keyed
on it is fetched. A missing dependency short-circuits to an empty result instead
of continuing with a partial pipeline. Upstream failures are not caught here.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from songscout.domain.entities import RecommendationRequest, Track
from songscout.domain.normalization import normalize_track, primary_artist_id
from songscout.domain.ports import MusicCatalog

logger = logging.getLogger(__name__)

# Catalog ceiling on seed_tracks + seed_artists + seed_genres
MAX_RECOMMENDATION_SEEDS = 5


@dataclass(frozen=True)
class SeedContext:
    """What the first pipeline step learns about the seed track."""

    track_id: str
    artist_id: str


@dataclass(frozen=True)
class SeedProfile:
    """Seed context enriched with audio features and artist genres."""

    seed: SeedContext
    tempo: Optional[float] = None
    key: Optional[int] = None
    genres: Sequence[str] = field(default_factory=tuple)


def finalize(raw_tracks: List[Mapping[str, Any]], seed_track_id: str, limit: int) -> List[Track]:
    """Normalize, drop the seed track itself and cap at ``limit``."""
    tracks = [normalize_track(raw) for raw in raw_tracks]
    return [t for t in tracks if t.id and t.id != seed_track_id][:limit]


def resolve_seed(catalog: MusicCatalog, seed_track_id: str) -> Optional[SeedContext]:
    """Step 1: fetch the seed track and extract its primary artist id."""
    seed_track = catalog.get_track(seed_track_id)
    artist_id = primary_artist_id(seed_track)
    if not artist_id:
        logger.warning(
            f"Could not find primary artist ID for track: {seed_track_id}. Returning empty results."
        )
        return None
    return SeedContext(track_id=seed_track_id, artist_id=artist_id)


class ArtistTopTracksStrategy:
    """Recommend the seed's primary artist's top tracks for a market."""

    name = 'top-tracks'

    def __init__(self, catalog: MusicCatalog, market: str = 'US'):
        self.catalog = catalog
        self.market = market

    def recommend(self, request: RecommendationRequest) -> List[Track]:
        seed = resolve_seed(self.catalog, request.seed_track_id)
        if seed is None:
            return []

        top_tracks = self.catalog.get_artist_top_tracks(seed.artist_id, self.market)
        if not top_tracks:
            logger.warning(
                f"No top tracks found for artist ID: {seed.artist_id}. Returning empty results."
            )
            return []

        return finalize(top_tracks, request.seed_track_id, request.limit)


class SeedDiscoveryStrategy:
    """Recommend through the catalog's seed-based discovery resource.

    Seeds are the track itself, its primary artist and up to three of that
    artist's genres; tempo and key of the seed are passed as targets.
    """

    name = 'seed-discovery'

    def __init__(self, catalog: MusicCatalog, market: Optional[str] = None):
        self.catalog = catalog
        self.market = market

    def profile(self, seed: SeedContext) -> SeedProfile:
        """Steps 2 and 3: audio features of the seed and genres of its artist."""
        features = self.catalog.get_audio_features(seed.track_id) or {}
        artist = self.catalog.get_artist(seed.artist_id) or {}
        return SeedProfile(
            seed=seed,
            tempo=features.get('tempo'),
            key=features.get('key'),
            genres=tuple(g for g in artist.get('genres') or [] if g),
        )

    def build_params(self, profile: SeedProfile, limit: int) -> Dict[str, Any]:
        """Step 4 input: query parameters for the recommendation resource."""
        params: Dict[str, Any] = {'limit': limit, 'seed_tracks': profile.seed.track_id}
        seed_count = 1
        if profile.tempo:
            params['target_tempo'] = profile.tempo
        if profile.key is not None:
            params['target_key'] = profile.key
        if profile.seed.artist_id and seed_count < MAX_RECOMMENDATION_SEEDS:
            params['seed_artists'] = profile.seed.artist_id
            seed_count += 1
        genre_seeds = list(profile.genres)[:MAX_RECOMMENDATION_SEEDS - seed_count]
        if genre_seeds:
            params['seed_genres'] = ','.join(genre_seeds)
        if self.market:
            params['market'] = self.market
        return params

    def recommend(self, request: RecommendationRequest) -> List[Track]:
        seed = resolve_seed(self.catalog, request.seed_track_id)
        if seed is None:
            return []

        profile = self.profile(seed)
        # One extra so dropping the seed still leaves ``limit`` tracks
        params = self.build_params(profile, min(request.limit + 1, 100))
        recommended = self.catalog.get_recommendations(**params)
        return finalize(recommended, request.seed_track_id, request.limit)


def create_strategy(name: str, catalog: MusicCatalog, market: str = 'US'):
    """Build the recommendation strategy selected by configuration."""
    if name == SeedDiscoveryStrategy.name:
        return SeedDiscoveryStrategy(catalog, market=market)
    if name == ArtistTopTracksStrategy.name:
        return ArtistTopTracksStrategy(catalog, market=market)
    raise ValueError(f"Unknown recommendation strategy: {name}")
