"""Base collector class and interfaces"""
import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Iterator, List
from metrics.models import MetricDescriptor, Sample


class BaseCollector(ABC):
    """Base class for all metric collectors"""

    def __init__(self, config=None, name: str = "", help_text: str = "", max_workers: int = 2):
        self.config = config or {}
        self._name = name
        self._help_text = help_text
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"{name}_collector")

    @abstractmethod
    def describe(self) -> Iterable[MetricDescriptor]:
        """Return every descriptor this collector can ever emit"""
        pass

    @abstractmethod
    def collect(self) -> Iterator[Sample]:
        """Run one collection cycle and yield its samples"""
        pass

    def collect_samples(self) -> List[Sample]:
        """Drain one collection cycle into a list"""
        return list(self.collect())

    async def collect_async(self) -> List[Sample]:
        """Async version of collect method"""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(self._executor, self.collect_samples)

    @property
    def name(self) -> str:
        """Collector name for identification"""
        return self._name

    @property
    def help_text(self) -> str:
        """Help text describing what this collector does"""
        return self._help_text or f"{self.name} metrics collector"

    def is_enabled(self) -> bool:
        """Check if this collector is enabled"""
        if hasattr(self.config, 'is_collector_enabled'):
            return self.config.is_collector_enabled(self.name)
        return True

    def get_status(self) -> dict:
        """Collector specific status details"""
        return {}

    def cleanup(self):
        """Cleanup resources"""
        if hasattr(self, '_executor'):
            self._executor.shutdown(wait=False)
