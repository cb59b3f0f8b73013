"""
Media Engine Factory
"""
from typing import Any, Callable, Dict, Optional

from consult_call.domain.interfaces.media_engine import MediaEngine


class MediaEngineFactory:
    """Factory for creating media engine instances"""

    @classmethod
    def create(cls, engine_type: str, config: Optional[Dict[str, Any]] = None) -> MediaEngine:
        """
        Create media engine instance.

        Args:
            engine_type: Engine type ("simulated")
            config: Optional engine configuration
        """
        config = config or {}

        if engine_type == "simulated":
            from consult_call.infrastructure.media.simulated_engine import SimulatedMediaEngine
            return SimulatedMediaEngine(config)

        raise ValueError(
            f"Unknown media engine type: {engine_type}. "
            f"Available: {', '.join(cls.list_engines())}"
        )

    @classmethod
    def provider(cls, engine_type: str, config: Optional[Dict[str, Any]] = None) -> Callable[[], MediaEngine]:
        """A zero-argument factory producing a fresh engine per room"""
        cls.create(engine_type, config)  # fail fast on unknown types
        return lambda: cls.create(engine_type, config)

    @classmethod
    def list_engines(cls) -> list[str]:
        return ["simulated"]
