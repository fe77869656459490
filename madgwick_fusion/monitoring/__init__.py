"""Performance monitoring module for the fusion loop."""

from .metrics import PerformanceMonitor, PerformanceStats, LoopMetrics

__all__ = ["PerformanceMonitor", "PerformanceStats", "LoopMetrics"]
