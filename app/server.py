"""FastAPI server setup and routes"""
import os
import time
from fastapi import FastAPI, Response, HTTPException
from fastapi.responses import HTMLResponse
from config import Config
from metrics.registry import MetricsRegistry
from metrics.exporters.prometheus import PrometheusExporter
from logging_config import get_logger, log_metrics_collection, log_error
from middleware.request_logging import RequestLoggingMiddleware


logger = get_logger(__name__)


class MetricsServer:
    """FastAPI server exposing the registry to Prometheus scrapes"""

    def __init__(self, config: Config, registry: MetricsRegistry):
        self.config = config
        self.registry = registry
        self.exporter = PrometheusExporter()
        self.app = FastAPI(
            title="Speedtest Exporter",
            version=config.service_version,
            docs_url=None,
            redoc_url=None,
            openapi_url=None
        )

        # Scrape state
        self.start_time = time.time()
        self.scrape_count = 0
        self.scrape_errors = 0
        self.last_scrape_time = 0.0
        self.last_scrape_samples = 0

        if self.config.enable_request_logging:
            self.app.add_middleware(RequestLoggingMiddleware)

        self._setup_routes()
        self._setup_events()

    def _setup_routes(self):
        """Setup FastAPI routes"""

        @self.app.get(self.config.metrics_path, response_class=Response)
        async def get_metrics():
            """Run one collection cycle and serve it in Prometheus format"""
            content = await self._scrape()
            return Response(content, media_type=self.exporter.content_type)

        @self.app.get('/health')
        def health_check():
            """Health check endpoint"""
            collectors = self.registry.get_collector_status()
            failing = [name for name, info in collectors.items() if info.get("last_success") is False]

            health_data = {
                "status": "unhealthy" if failing else "healthy",
                "failing_collectors": failing,
                "total_scrapes": self.scrape_count,
                "scrape_errors": self.scrape_errors,
            }

            if failing:
                raise HTTPException(status_code=503, detail=health_data)

            return health_data

        @self.app.get('/status')
        def get_status():
            """Detailed status information"""
            age = time.time() - self.last_scrape_time if self.last_scrape_time > 0 else None

            return {
                "service": {
                    "name": self.config.service_name,
                    "version": self.config.service_version,
                    "uptime_seconds": round(time.time() - self.start_time, 1),
                    "hostname": os.uname().nodename
                },
                "scrapes": {
                    "metrics_path": self.config.metrics_path,
                    "scrape_timeout_seconds": self.config.scrape_deadline,
                    "last_scrape_seconds_ago": round(age, 1) if age is not None else None,
                    "last_scrape_samples": self.last_scrape_samples,
                    "total_scrapes": self.scrape_count,
                    "scrape_errors": self.scrape_errors
                },
                "collectors": self.registry.get_collector_status()
            }

        @self.app.get('/collectors')
        def list_collectors():
            """List all registered collectors"""
            return {
                "collectors": self.registry.get_collector_status(),
                "enabled_collectors": self.config.enabled_collectors
            }

        @self.app.get('/', response_class=HTMLResponse)
        def index():
            """Landing page"""
            return self._generate_html_interface()

    def _setup_events(self):
        """Setup FastAPI shutdown event"""

        @self.app.on_event("shutdown")
        async def shutdown_event():
            logger.info("Shutting down speedtest exporter", event_type="server_shutdown")
            self.registry.cleanup()

    async def _scrape(self) -> str:
        """Collect from the registry and render; never raises"""
        start_time = time.time()
        self.scrape_count += 1

        try:
            samples = await self.registry.collect_all_async(timeout=self.config.scrape_deadline)
            content = self.exporter.export_metrics(samples)
        except Exception as e:
            log_error(logger, e, {"component": "scrape", "scrape_count": self.scrape_count})
            self.scrape_errors += 1
            return ""

        self.last_scrape_time = time.time()
        self.last_scrape_samples = len(samples)
        log_metrics_collection(logger, len(samples), self.last_scrape_time - start_time)
        return content

    def _generate_html_interface(self) -> str:
        """Generate HTML interface"""
        return f"""<html>
             <head><title>Speedtest Exporter</title></head>
             <body>
             <h1>Speedtest Exporter</h1>
             <p><a href='{self.config.metrics_path}'>Metrics</a></p>
             </body>
             </html>"""

    def get_app(self) -> FastAPI:
        """Get the FastAPI application"""
        return self.app
