from .config import WidgetConfig
from .normalizer import NormalizeResult, load_widget_config, normalize_widget_config

__all__ = [
    "WidgetConfig",
    "NormalizeResult",
    "load_widget_config",
    "normalize_widget_config",
]
