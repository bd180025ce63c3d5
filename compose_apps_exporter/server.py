"""
HTTP layer of the exporter.

Each GET /metrics runs one scrape and serializes it in the Prometheus text
format. Scrape-fatal errors become a 500 response without a metrics body.
"""
import logging
import signal
import sys
from typing import Optional

from flask import Flask, Response, redirect
from prometheus_client import CONTENT_TYPE_LATEST

from compose_apps_exporter import __version__
from compose_apps_exporter.aggregator import render_exposition
from compose_apps_exporter.config import ExporterConfig
from compose_apps_exporter.errors import RuntimeUnavailableError, ScrapeFatalError
from compose_apps_exporter.runtime import DockerComposeQuerier, RuntimeStatusQuerier
from compose_apps_exporter.scrape import run_scrape

logger = logging.getLogger(__name__)

INTERNAL_ERROR_BODY = "Internal server error. Check logs for details."


class ComposeAppsExporter:
    """Serves compose service metrics over HTTP."""

    def __init__(self, config: ExporterConfig, querier: Optional[RuntimeStatusQuerier] = None):
        """
        Initialize the exporter.

        Args:
            config: Resolved exporter configuration
            querier: Runtime access; defaults to the docker compose CLI
        """
        self.config = config
        self.querier = querier or DockerComposeQuerier(
            binary=config.runtime_binary,
            timeout=config.query_timeout,
        )

        self.app = Flask(__name__)
        self._setup_routes()

    def _setup_routes(self):
        """Setup Flask routes."""

        @self.app.route('/')
        def root():
            return redirect('/metrics', code=308)

        @self.app.route('/metrics')
        def metrics_endpoint():
            """Prometheus metrics endpoint."""
            try:
                result = run_scrape(self.config, self.querier)
            except ScrapeFatalError as e:
                logger.error(f"Error while handling /metrics request: {e}")
                return Response(INTERNAL_ERROR_BODY, status=500, mimetype='text/plain')

            return Response(render_exposition(result.samples), mimetype=CONTENT_TYPE_LATEST)

        @self.app.route('/health')
        def health():
            """Health check endpoint."""
            try:
                self.querier.ensure_available()
            except RuntimeUnavailableError as e:
                logger.warning(f"Health check failed: {e}")
                return {'status': 'unhealthy', 'runtime': 'unavailable'}, 503
            return {'status': 'healthy', 'runtime': 'available', 'version': __version__}, 200

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down...")
        sys.exit(0)

    def start(self):
        """Run the HTTP server until interrupted."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        logger.info(f"compose-apps-exporter listening on http://{self.config.address}:{self.config.port}")
        logger.info(f"Compose config globs: {self.config.compose_configs_glob}")
        self.app.run(host=self.config.address, port=self.config.port, threaded=True)


def create_app(config: ExporterConfig, querier: Optional[RuntimeStatusQuerier] = None) -> Flask:
    """Build the Flask application for a configuration."""
    return ComposeAppsExporter(config, querier).app


def serve(config: ExporterConfig) -> None:
    ComposeAppsExporter(config).start()
