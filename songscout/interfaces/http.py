import logging
import uuid
from datetime import datetime
from typing import Optional

import requests
from flask import Flask, Response, g, jsonify, request
from werkzeug.exceptions import HTTPException

from songscout.application.catalog_service import CatalogService
from songscout.bootstrap import ServiceContainer, build_container
from songscout.crosscutting.config import Settings, load_settings
from songscout.crosscutting.logging import RequestContext, log_error, log_upstream_failure
from songscout.crosscutting.metrics import MetricsCollector
from songscout.domain.errors import CatalogError
from songscout.infrastructure.credentials import CredentialCache


class HTTPServer:
    """HTTP facade exposing track search, autocomplete, recommendations and track detail."""

    def __init__(self,
                 service: CatalogService,
                 host: str = '127.0.0.1',
                 port: int = 3001,
                 debug: bool = False,
                 metrics: Optional[MetricsCollector] = None,
                 credentials: Optional[CredentialCache] = None):
        """Initialize HTTP server."""
        self.service = service
        self.host = host
        self.port = port
        self.debug = debug
        self.metrics = metrics or MetricsCollector()
        self.credentials = credentials
        self.app = Flask(__name__)
        self.app.json.sort_keys = False
        self.logger = logging.getLogger(__name__)

        self.version = "0.1.0"

        self._setup_hooks()
        self._setup_error_handlers()
        self._setup_routes()

    @classmethod
    def from_container(cls, container: ServiceContainer, debug: bool = False) -> 'HTTPServer':
        return cls(
            container.service,
            host=container.settings.host,
            port=container.settings.port,
            debug=debug,
            metrics=container.metrics,
            credentials=container.credentials,
        )

    def _setup_hooks(self) -> None:
        """Bind correlation data to each request and allow cross-origin calls."""

        @self.app.before_request
        def bind_request_context():
            g.request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex[:12]
            g.log_context = RequestContext(request_id=g.request_id, endpoint=request.path)
            g.log_context.__enter__()

        @self.app.teardown_request
        def unbind_request_context(exc):
            context = g.pop('log_context', None)
            if context is not None:
                context.__exit__(None, None, None)

        @self.app.after_request
        def add_headers(response: Response) -> Response:
            response.headers['Access-Control-Allow-Origin'] = '*'
            response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
            if 'request_id' in g:
                response.headers['X-Request-ID'] = g.request_id
            return response

    def _setup_error_handlers(self) -> None:
        """Map every failure onto the uniform ``{"error": ...}`` body."""

        @self.app.errorhandler(CatalogError)
        def handle_catalog_error(error: CatalogError):
            log_upstream_failure(self.logger, request.path, error, query=dict(request.args))
            self.metrics.record_error(error.status_code)
            return jsonify({'error': error.message}), error.status_code

        @self.app.errorhandler(HTTPException)
        def handle_http_exception(error: HTTPException):
            self.metrics.record_error(error.code or 500)
            return jsonify({'error': error.description or error.name}), error.code or 500

        @self.app.errorhandler(Exception)
        def handle_unexpected(error: Exception):
            log_error(self.logger, f"Unhandled error on {request.path}", error)
            self.metrics.record_error(500)
            return jsonify({'error': 'Internal server error'}), 500

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/', methods=['GET'])
        def root():
            """Plain-text liveness probe."""
            return Response('Music Recommendation API is running!', mimetype='text/plain')

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'timestamp': datetime.now().isoformat(),
                'credential': self.credentials.state if self.credentials else 'unknown',
                'metrics': self.metrics.to_dict(),
            }), 200

        @self.app.route('/api/search', methods=['GET'])
        def search():
            self.metrics.record_request('search')
            tracks = self.service.search(request.args.get('q'), request.args.get('limit'))
            return jsonify([t.to_dict() for t in tracks])

        @self.app.route('/api/autocomplete', methods=['GET'])
        def autocomplete():
            self.metrics.record_request('autocomplete')
            suggestions = self.service.autocomplete(request.args.get('q'), request.args.get('limit'))
            return jsonify([s.to_dict() for s in suggestions])

        @self.app.route('/api/recommend', methods=['GET'])
        def recommend():
            self.metrics.record_request('recommend')
            tracks = self.service.recommend(request.args.get('trackId'), request.args.get('limit'))
            return jsonify([t.to_dict() for t in tracks])

        @self.app.route('/api/track/<track_id>', methods=['GET'])
        def track_detail(track_id: str):
            self.metrics.record_request('track')
            track = self.service.track_detail(track_id)
            return jsonify(track.to_detail_dict())

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Server listening at http://{self.host}:{self.port}")
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug,
            threaded=True
        )


def create_app(settings: Optional[Settings] = None,
               session: Optional[requests.Session] = None) -> Flask:
    """Create the Flask app with the full service graph (WSGI entry point)."""
    container = build_container(settings or load_settings(), session=session)
    return HTTPServer.from_container(container).app
