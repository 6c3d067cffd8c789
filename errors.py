"""Exception hierarchy for Speedtest Exporter"""


class ExporterError(Exception):
    """Base class for all exporter errors"""


class ConfigurationError(ExporterError):
    """Measurement provider could not be configured at startup"""


class NetworkError(ExporterError):
    """An outbound request could not be completed"""


class AddressResolutionError(NetworkError):
    """Public address could not be determined"""


class MeasurementError(NetworkError):
    """Speed measurement failed"""


class ProtocolError(MeasurementError):
    """Measurement provider returned malformed data"""
