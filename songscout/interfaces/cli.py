import argparse
import json
import logging
import sys
import time
from dataclasses import replace
from typing import Any, List, Optional

from songscout.bootstrap import ServiceContainer, build_container
from songscout.crosscutting.config import ConfigError, RECOMMEND_STRATEGIES, load_settings
from songscout.crosscutting.logging import setup_logging
from songscout.domain.errors import CatalogError
from songscout.interfaces.http import HTTPServer


class CLI:
    """Command Line Interface for SongScout."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='songscout',
            description='Search tracks and discover related music through the Spotify catalog'
        )
        parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default=None,
            help='Set logging level (default from LOG_LEVEL or INFO)'
        )
        parser.add_argument(
            '--env-file',
            default=None,
            help='Path to a .env file (default: ./.env when present)'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        serve_parser = subparsers.add_parser('serve', help='Run the HTTP API')
        serve_parser.add_argument('--host', default=None, help='Bind address (default from HOST)')
        serve_parser.add_argument('--port', type=int, default=None, help='Listening port (default from PORT or 3001)')
        serve_parser.add_argument('--debug', action='store_true', help='Enable Flask debug mode')
        serve_parser.add_argument(
            '--strategy',
            choices=RECOMMEND_STRATEGIES,
            default=None,
            help='Recommendation strategy (default from RECOMMEND_STRATEGY or top-tracks)'
        )

        search_parser = subparsers.add_parser('search', help='Search tracks')
        search_parser.add_argument('query', help='Free-text query')
        search_parser.add_argument('--limit', type=int, default=None, help='Maximum results (default: 10)')

        autocomplete_parser = subparsers.add_parser('autocomplete', help='Suggest tracks for a partial query')
        autocomplete_parser.add_argument('query', help='Partial query (at least 2 characters)')
        autocomplete_parser.add_argument('--limit', type=int, default=None, help='Maximum suggestions (default: 5)')

        recommend_parser = subparsers.add_parser('recommend', help='Tracks related to a seed track')
        recommend_parser.add_argument('track_id', help='Seed track ID')
        recommend_parser.add_argument('--limit', type=int, default=None, help='Maximum results (default: 8)')
        recommend_parser.add_argument(
            '--strategy',
            choices=RECOMMEND_STRATEGIES,
            default=None,
            help='Recommendation strategy (default from RECOMMEND_STRATEGY or top-tracks)'
        )

        track_parser = subparsers.add_parser('track', help='Show one track with extended details')
        track_parser.add_argument('track_id', help='Track ID')

        return parser

    def _build_container(self, args: argparse.Namespace) -> ServiceContainer:
        """Load settings, apply command-line overrides and wire the services."""
        settings = load_settings(env_file=args.env_file)
        overrides = {}
        if getattr(args, 'host', None):
            overrides['host'] = args.host
        if getattr(args, 'port', None):
            overrides['port'] = args.port
        if getattr(args, 'strategy', None):
            overrides['recommend_strategy'] = args.strategy
        if overrides:
            settings = replace(settings, **overrides)
        return build_container(settings)

    def _print_json(self, payload: Any) -> None:
        print(json.dumps(payload, indent=2, ensure_ascii=False))

    def _serve(self, container: ServiceContainer, args: argparse.Namespace) -> None:
        logger = logging.getLogger('songscout.cli')
        logger.info("Starting SongScout", extra={'fields': container.settings.summary()})
        server = HTTPServer.from_container(container, debug=args.debug)
        server.run()

    def _execute(self, container: ServiceContainer, args: argparse.Namespace) -> None:
        service = container.service
        if args.command == 'search':
            self._print_json([t.to_dict() for t in service.search(args.query, args.limit)])
        elif args.command == 'autocomplete':
            self._print_json([s.to_dict() for s in service.autocomplete(args.query, args.limit)])
        elif args.command == 'recommend':
            self._print_json([t.to_dict() for t in service.recommend(args.track_id, args.limit)])
        elif args.command == 'track':
            self._print_json(service.track_detail(args.track_id).to_detail_dict())

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        args = self.parser.parse_args(argv)

        if not args.command:
            self.parser.print_help()
            return 1

        logger = logging.getLogger('songscout.cli')
        try:
            container = self._build_container(args)
        except ConfigError as e:
            # Refuse to start without catalog credentials
            setup_logging(args.log_level or 'INFO')
            logger.error(f"Configuration error: {e}")
            return 2

        setup_logging(args.log_level or container.settings.log_level)

        try:
            if args.command == 'serve':
                self._serve(container, args)
            else:
                self._execute(container, args)
        except CatalogError as e:
            logger.error(f"{args.command} failed ({e.status_code}): {e.message}")
            return 1
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return 130
        finally:
            duration = time.time() - self._start_time
            logger.debug(f"CLI execution time: {duration:.2f}s")
        return 0


def main():
    """Main entry point."""
    sys.exit(CLI().run())


if __name__ == '__main__':
    main()
