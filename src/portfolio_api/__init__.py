"""Portfolio API: media portfolio backend with in-process performance metrics."""

__version__ = "1.0.0"
__title__ = "portfolio-api"
