#!/usr/bin/env python3
"""Main entry point for Speedtest Exporter"""
import sys
from typing import Tuple
import click
import uvicorn
from pydantic import ValidationError
from config import Config
from app.server import MetricsServer
from collectors.build_info import BuildInfoCollector
from collectors.speedtest import SpeedtestCollector
from metrics.registry import MetricsRegistry
from utils.address import AddressResolver
from utils.speedtest_client import SpeedtestClient
from logging_config import setup_structured_logging, get_logger, log_server_startup, log_error
from version import __version__


def parse_listen_address(value: str) -> Tuple[str, int]:
    """Split a host:port listen address; an empty host listens on all interfaces"""
    host, sep, port = value.rpartition(':')
    if not sep or not port.isdigit():
        raise click.BadParameter(f"expected [host]:port, got {value!r}")
    host = host.strip('[]') or "0.0.0.0"
    return host, int(port)


def build_registry(config: Config) -> MetricsRegistry:
    """Create the collectors and the registry served by the HTTP layer.

    Raises ConfigurationError when the speedtest client cannot be set up.
    """
    registry = MetricsRegistry(config)

    if config.is_collector_enabled("speedtest"):
        client = SpeedtestClient(
            config.speedtest_config_url,
            config.speedtest_server_url,
            timeout=config.speedtest_timeout,
            secure=config.speedtest_secure,
            source_address=config.speedtest_source_address,
            threads=config.speedtest_threads,
            closest_servers=config.speedtest_closest_servers
        )
        resolver = AddressResolver(config.ip_check_url, timeout=config.ip_check_timeout)
        registry.register_collector(SpeedtestCollector(client, resolver, config))

    if config.is_collector_enabled("build_info"):
        registry.register_collector(BuildInfoCollector(config=config))

    return registry


@click.command()
@click.version_option(
    version=__version__,
    prog_name="speedtest_exporter",
    message="Speedtest Prometheus exporter. v%(version)s"
)
@click.option("--web.listen-address", "listen_address", default=None,
              help="Address to listen on for web interface and telemetry. [default: :9112]")
@click.option("--web.telemetry-path", "metrics_path", default=None,
              help="Path under which to expose metrics. [default: /metrics]")
@click.option("--speedtest.config-url", "config_url", default=None,
              help="Speedtest configuration URL")
@click.option("--speedtest.server-url", "server_url", default=None,
              help="Speedtest server URL")
@click.option("--log-level", "log_level", default=None,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
              help="Logging level")
def main(listen_address, metrics_path, config_url, server_url, log_level):
    """Prometheus exporter measuring latency and bandwidth with speedtest."""
    overrides = {}
    if listen_address is not None:
        overrides["metrics_host"], overrides["metrics_port"] = parse_listen_address(listen_address)
    if metrics_path is not None:
        overrides["metrics_path"] = metrics_path
    if config_url is not None:
        overrides["speedtest_config_url"] = config_url
    if server_url is not None:
        overrides["speedtest_server_url"] = server_url
    if log_level is not None:
        overrides["log_level"] = log_level.upper()

    try:
        config = Config(**overrides)
    except ValidationError as e:
        raise click.UsageError(str(e))

    setup_structured_logging(config)
    logger = get_logger(__name__)

    try:
        log_server_startup(logger, config)

        registry = build_registry(config)
        logger.info("Collectors registered", collectors=registry.list_collectors())
        server = MetricsServer(config, registry)

        logger.info("Listening on", host=config.metrics_host, port=config.metrics_port)
        uvicorn.run(
            server.get_app(),
            host=config.metrics_host,
            port=config.metrics_port,
            log_config=None  # We handle logging ourselves
        )

    except Exception as e:
        log_error(logger, e, {"component": "main", "phase": "startup"})
        sys.exit(1)


if __name__ == '__main__':
    main()
