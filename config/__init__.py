from .settings import Settings, TimelineDefinition, is_key_segment
from .logging_config import configure_logging, get_logger

__all__ = ["Settings", "TimelineDefinition", "configure_logging", "get_logger", "is_key_segment"]
