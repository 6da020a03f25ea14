import logging
from typing import Any, List, Optional

from songscout.crosscutting.logging import log_error, log_with_fields
from songscout.crosscutting.metrics import MetricsCollector
from songscout.domain.entities import (
    MAX_CATALOG_LIMIT, RecommendationRequest, SearchQuery, Suggestion, Track,
)
from songscout.domain.errors import CatalogError, UpstreamError, ValidationError
from songscout.domain.normalization import (
    normalize_suggestion, normalize_track, normalize_track_detail,
)
from songscout.domain.ports import MusicCatalog, RecommendationStrategy

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_AUTOCOMPLETE_LIMIT = 5
DEFAULT_RECOMMEND_LIMIT = 8
MIN_AUTOCOMPLETE_CHARS = 2


def parse_limit(raw: Any, default: int, maximum: int = MAX_CATALOG_LIMIT) -> int:
    """Parse a ``limit`` query value.

    Missing, non-numeric or non-positive values fall back to ``default``;
    larger values are clamped to the catalog maximum.
    """
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    return min(value, maximum)


class CatalogService:
    """Endpoint orchestrators composing the catalog, the normalizer and a recommender.

    Search, recommend and track detail surface every failure to the caller.
    Autocomplete is best-effort and degrades any failure to an empty list.
    """

    def __init__(self,
                 catalog: MusicCatalog,
                 recommender: RecommendationStrategy,
                 market: Optional[str] = 'US',
                 metrics: Optional[MetricsCollector] = None):
        self.catalog = catalog
        self.recommender = recommender
        self.market = market
        self.metrics = metrics

    def search(self, query: Optional[str], limit: Optional[int] = None) -> List[Track]:
        """Search tracks by free text.

        Raises:
            ValidationError: If ``query`` is missing or blank
        """
        text = (query or '').strip()
        if not text:
            raise ValidationError("Search query is required")
        search = SearchQuery(text=text, limit=parse_limit(limit, DEFAULT_SEARCH_LIMIT))

        items = self.catalog.search_tracks(search.text, search.limit, market=self.market)
        return [normalize_track(item) for item in items][:search.limit]

    def autocomplete(self, query: Optional[str], limit: Optional[int] = None) -> List[Suggestion]:
        """Suggest tracks for a partial query; never raises.

        The two-character threshold counts the query as typed, whitespace included.
        """
        if not query or len(query) < MIN_AUTOCOMPLETE_CHARS:
            return []
        limit = parse_limit(limit, DEFAULT_AUTOCOMPLETE_LIMIT)

        try:
            items = self.catalog.search_tracks(query, limit)
            return [normalize_suggestion(item) for item in items][:limit]
        except Exception as e:
            if isinstance(e, CatalogError):
                # Fires on every keystroke, keep it quiet
                log_with_fields(logger, 'DEBUG', "Autocomplete degraded to empty result", {
                    'error_type': type(e).__name__,
                    'status': e.status_code,
                    'error_message': e.message,
                })
            else:
                log_error(logger, "Autocomplete degraded on an unexpected catalog payload", e)
            if self.metrics is not None:
                self.metrics.record_degraded('autocomplete')
            return []

    def recommend(self, seed_track_id: Optional[str], limit: Optional[int] = None) -> List[Track]:
        """Tracks related to a seed track, never including the seed itself.

        Raises:
            ValidationError: If ``seed_track_id`` is missing
        """
        seed = (seed_track_id or '').strip()
        if not seed:
            raise ValidationError("Track ID is required")
        request = RecommendationRequest(
            seed_track_id=seed, limit=parse_limit(limit, DEFAULT_RECOMMEND_LIMIT)
        )

        tracks = self.recommender.recommend(request)
        logger.debug(
            f"Recommended {len(tracks)} tracks for {seed} using {self.recommender.name}"
        )
        return [t for t in tracks if t.id != seed][:request.limit]

    def track_detail(self, track_id: Optional[str]) -> Track:
        """Single track with duration, release date and external links.

        Raises:
            ValidationError: If ``track_id`` is missing
            UpstreamError: 404 with a track-not-found message if the catalog has no such track
        """
        track_id = (track_id or '').strip()
        if not track_id:
            raise ValidationError("Track ID is required in URL path")

        try:
            raw = self.catalog.get_track(track_id)
        except UpstreamError as e:
            if e.status_code == 404:
                raise UpstreamError(404, "Track not found on Spotify") from e
            raise

        if not raw:
            raise UpstreamError(404, "Track not found on Spotify")
        return normalize_track_detail(raw)
