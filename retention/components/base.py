"""Base class for engine components."""

from abc import ABC, abstractmethod
from typing import Optional

from ..config import DEFAULT_CONFIG, EngineConfig


class BaseComponent(ABC):
    """
    Abstract base class for engine components.

    Each component is a stateless transform over its inputs; the only
    thing it holds is the configuration it was built with, so one instance
    can be shared across gyms and threads.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        """
        Initialize component with configuration.

        Args:
            config: EngineConfig instance with thresholds and weights.
                Uses DEFAULT_CONFIG if None.
        """
        self.config = config or DEFAULT_CONFIG

    @property
    @abstractmethod
    def name(self) -> str:
        """Key the engine registers this component under."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(version={self.config.version!r})"
