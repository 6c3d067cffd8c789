"""Version information for Speedtest Exporter"""
__version__ = "1.0.0"
