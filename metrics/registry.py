"""Metrics registry for managing collectors and orchestrating collection"""
import asyncio
from typing import Dict, List, Optional
from .models import Sample
from collectors.base import BaseCollector
from logging_config import get_logger


logger = get_logger(__name__)


class MetricsRegistry:
    """Registry of the collectors queried on every scrape"""

    def __init__(self, config=None):
        self.config = config
        self.collectors: Dict[str, BaseCollector] = {}
        self._descriptor_owners: Dict[str, str] = {}

    def register_collector(self, collector: BaseCollector):
        """Register a new collector.

        Raises ValueError when the collector name or any of its descriptor
        names is already registered.
        """
        if not isinstance(collector, BaseCollector):
            raise ValueError("Collector must inherit from BaseCollector")
        if collector.name in self.collectors:
            raise ValueError(f"Collector already registered: {collector.name}")

        names = [descriptor.name for descriptor in collector.describe()]
        for name in names:
            owner = self._descriptor_owners.get(name)
            if owner is not None:
                raise ValueError(f"Metric {name} already registered by collector {owner}")
        if len(set(names)) != len(names):
            raise ValueError(f"Collector {collector.name} describes duplicate metric names")

        self.collectors[collector.name] = collector
        for name in names:
            self._descriptor_owners[name] = collector.name
        logger.info("Registered collector", collector=collector.name, metrics=names)

    def list_collectors(self) -> List[str]:
        """List all registered collector names"""
        return list(self.collectors.keys())

    def _active_collectors(self) -> List[BaseCollector]:
        return [collector for collector in self.collectors.values() if collector.is_enabled()]

    async def collect_all_async(self, timeout: Optional[float] = None) -> List[Sample]:
        """Collect from all enabled collectors concurrently.

        A collector that fails or exceeds `timeout` seconds contributes no
        samples; the others are still returned.
        """
        collectors = self._active_collectors()
        results = await asyncio.gather(
            *[self._collect_one(collector, timeout) for collector in collectors]
        )

        all_metrics = []
        for metrics in results:
            all_metrics.extend(metrics)
        return all_metrics

    async def _collect_one(self, collector: BaseCollector, timeout: Optional[float]) -> List[Sample]:
        try:
            metrics = await asyncio.wait_for(collector.collect_async(), timeout=timeout)
            logger.debug("Collected metrics", collector=collector.name, count=len(metrics))
            return metrics
        except asyncio.TimeoutError:
            logger.error(
                "Collector exceeded scrape timeout",
                collector=collector.name,
                timeout_seconds=timeout,
                event_type="collection_timeout"
            )
        except Exception as e:
            logger.error("Collector failed", collector=collector.name, error=str(e), exc_info=True)
        return []

    def get_collector_status(self) -> Dict[str, Dict]:
        """Get status information for all collectors"""
        status = {}

        for name, collector in self.collectors.items():
            status[name] = {
                "enabled": collector.is_enabled(),
                "class": collector.__class__.__name__,
                "help": collector.help_text,
                "metrics": [descriptor.name for descriptor in collector.describe()],
                **collector.get_status()
            }

        return status

    def cleanup(self):
        for collector in self.collectors.values():
            collector.cleanup()
