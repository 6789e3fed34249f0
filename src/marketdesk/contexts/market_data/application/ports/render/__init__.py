from .chart_viewport import ChartViewport

__all__ = ["ChartViewport"]
