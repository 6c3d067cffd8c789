"""Configuration management for Speedtest Exporter"""
import secrets
import string
from pathlib import Path
from typing import List, Literal, Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from version import __version__


SPEEDTEST_CONFIG_URL = "http://c.speedtest.net/speedtest-config.php"
SPEEDTEST_SERVER_URL = "http://c.speedtest.net/speedtest-servers-static.php"


def cache_buster(length: int = 16) -> str:
    """Random alphanumeric token for the x= query parameter"""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def default_config_url() -> str:
    return f"{SPEEDTEST_CONFIG_URL}?x={cache_buster()}"


def default_server_url() -> str:
    return f"{SPEEDTEST_SERVER_URL}?x={cache_buster()}"


class Config(BaseSettings):
    """Configuration class with Pydantic validation and environment-based settings"""

    # Server settings
    metrics_host: str = Field(default="0.0.0.0", description="Metrics server host")
    metrics_port: int = Field(default=9112, ge=1, le=65535, description="Metrics server port")
    metrics_path: str = Field(default="/metrics", description="Path under which to expose metrics")

    # Speedtest settings
    speedtest_config_url: str = Field(default_factory=default_config_url, description="Speedtest configuration URL")
    speedtest_server_url: str = Field(default_factory=default_server_url, description="Speedtest server list URL")
    speedtest_timeout: float = Field(default=10.0, gt=0, description="Speedtest HTTP timeout in seconds")
    speedtest_secure: bool = Field(default=False, description="Use HTTPS for speedtest servers")
    speedtest_source_address: Optional[str] = Field(default=None, description="Source address to bind to")
    speedtest_threads: Optional[int] = Field(default=None, ge=1, description="Download/upload threads (library default if unset)")
    speedtest_closest_servers: int = Field(default=5, ge=1, description="Number of closest servers tested for latency")

    # Public address lookup
    ip_check_url: str = Field(default="http://checkip.amazonaws.com", description="Address reflection endpoint")
    ip_check_timeout: float = Field(default=5.0, gt=0, description="Address lookup timeout in seconds")

    # Collection settings
    scrape_timeout: float = Field(default=90.0, ge=0, description="Per-collector scrape deadline in seconds (0 disables)")
    enabled_collectors_str: str = Field(
        default="speedtest,build_info",
        description="Enabled collectors (comma-separated)"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO", description="Log level")
    log_file: Optional[Path] = Field(default=None, description="Log file path (console only when unset)")

    # Service settings
    service_name: str = Field(default="speedtest-exporter", description="Service name")
    service_version: str = Field(default=__version__, description="Service version")
    enable_request_logging: bool = Field(default=True, description="Enable HTTP request logging")

    class Config:
        env_prefix = ""
        case_sensitive = False

    @validator('metrics_path')
    def validate_metrics_path(cls, v):
        """Metrics must live on their own absolute path"""
        if not v.startswith('/'):
            raise ValueError("metrics_path must start with '/'")
        if v == '/':
            raise ValueError("metrics_path cannot be '/', it serves the index page")
        return v

    @validator('log_level', pre=True)
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @validator('log_file')
    def ensure_log_directory(cls, v):
        if isinstance(v, Path):
            v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def enabled_collectors(self) -> List[str]:
        """Get enabled collectors as a list"""
        return [item.strip() for item in self.enabled_collectors_str.split(',') if item.strip()]

    def is_collector_enabled(self, collector_name: str) -> bool:
        """Check if a specific collector is enabled"""
        return collector_name in self.enabled_collectors

    @property
    def scrape_deadline(self) -> Optional[float]:
        """Scrape timeout in seconds, None when disabled"""
        return self.scrape_timeout or None
