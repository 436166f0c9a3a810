"""Channel-Product Fit engine"""

from app.services.channel_fit.clustering import build_cluster_key, normalize_title
from app.services.channel_fit.engine import ChannelFitEngine, resolve_period
from app.services.channel_fit.errors import (
    ChannelFitError,
    ChannelFitValidationError,
    ConfigurationError,
)
from app.services.channel_fit.pseudonym import Pseudonymizer
from app.services.channel_fit.types import ChannelFitResult

__all__ = [
    "ChannelFitEngine",
    "ChannelFitError",
    "ChannelFitResult",
    "ChannelFitValidationError",
    "ConfigurationError",
    "Pseudonymizer",
    "build_cluster_key",
    "normalize_title",
    "resolve_period",
]
