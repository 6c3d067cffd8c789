"""Speedtest measurement provider backed by speedtest-cli"""
import threading
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional
import httpx
import speedtest
from errors import ConfigurationError, MeasurementError, ProtocolError
from logging_config import get_logger

logger = get_logger(__name__)

BITS_PER_MEGABIT = 1_000_000.0


class SpeedtestClient:
    """Long-lived handle that performs speed measurements.

    Server discovery happens once at construction: the client location is
    read from the configuration document and the closest servers from the
    server list are kept for latency selection on every measurement.
    Measurements are serialized because the underlying speedtest handle
    keeps per-run state.
    """

    def __init__(self, config_url: str, server_url: str, timeout: float = 10.0,
                 secure: bool = False, source_address: Optional[str] = None,
                 threads: Optional[int] = None, closest_servers: int = 5,
                 http_client: Optional[httpx.Client] = None):
        self.config_url = config_url
        self.server_url = server_url
        self.timeout = timeout
        self.threads = threads
        self._http = http_client
        self._lock = threading.Lock()

        logger.info("Setup Speedtest client", config_url=config_url, server_url=server_url)
        self.client_info = self._discover_client()
        self.servers = self._discover_servers(closest_servers)

        try:
            self._speedtest = speedtest.Speedtest(
                timeout=timeout,
                secure=secure,
                source_address=source_address
            )
        except speedtest.SpeedtestException as e:
            raise ConfigurationError(f"Can't create the Speedtest client: {e}") from e

        logger.info(
            "Speedtest client ready",
            client_ip=self.client_info.get("ip"),
            isp=self.client_info.get("isp"),
            servers=[server.get("id") for server in self.servers],
            event_type="speedtest_configured"
        )

    def _fetch_xml(self, url: str, what: str) -> ET.Element:
        try:
            if self._http is not None:
                response = self._http.get(url, timeout=self.timeout)
            else:
                response = httpx.get(url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ConfigurationError(f"Can't retrieve {what} from {url}: {e}") from e

        try:
            return ET.fromstring(response.content)
        except ET.ParseError as e:
            raise ConfigurationError(f"Can't parse {what} from {url}: {e}") from e

    def _discover_client(self) -> Dict[str, str]:
        """Read the client element of the configuration document"""
        root = self._fetch_xml(self.config_url, "speedtest configuration")
        client = root.find("client")
        if client is None:
            raise ConfigurationError(f"No client element in speedtest configuration from {self.config_url}")

        info = dict(client.attrib)
        try:
            float(info["lat"])
            float(info["lon"])
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Invalid client location in speedtest configuration: {e}") from e
        return info

    def _discover_servers(self, limit: int) -> List[Dict[str, str]]:
        """Keep the `limit` servers closest to the client"""
        root = self._fetch_xml(self.server_url, "speedtest server list")
        origin = (float(self.client_info["lat"]), float(self.client_info["lon"]))

        servers = []
        for element in root.iter("server"):
            server = dict(element.attrib)
            try:
                server["d"] = speedtest.distance(origin, (float(server["lat"]), float(server["lon"])))
            except (KeyError, ValueError):
                logger.debug("Skipping server without location", server=server.get("id"))
                continue
            if "url" not in server:
                continue
            servers.append(server)

        if not servers:
            raise ConfigurationError(f"No usable servers in speedtest server list from {self.server_url}")

        servers.sort(key=lambda s: s["d"])
        return servers[:limit]

    def network_metrics(self) -> Dict[str, float]:
        """Run one full measurement.

        Returns ping in milliseconds and download/upload in Mbps. Raises
        MeasurementError when any step of the measurement fails.
        """
        with self._lock:
            try:
                best = self._speedtest.get_best_server([dict(server) for server in self.servers])
                logger.debug("Selected speedtest server", server=best.get("id"), latency=best.get("latency"))
                self._speedtest.download(threads=self.threads)
                self._speedtest.upload(threads=self.threads)
            except speedtest.SpeedtestException as e:
                raise MeasurementError(f"Speedtest measurement failed: {e}") from e
            except OSError as e:
                raise MeasurementError(f"Speedtest measurement failed: {e}") from e

            results = self._speedtest.results
            try:
                reading = {
                    "ping": float(results.ping),
                    "download": results.download / BITS_PER_MEGABIT,
                    "upload": results.upload / BITS_PER_MEGABIT,
                }
            except (TypeError, ValueError) as e:
                raise ProtocolError(f"Incomplete speedtest results: {e}") from e

            # speedtest-cli drops failed transfers, so a dead server shows up as zero bandwidth
            idle = [direction for direction in ("download", "upload") if reading[direction] <= 0]
            if idle:
                raise MeasurementError(f"Speedtest transferred no data ({', '.join(idle)})")
            return reading
