"""Infrastructure layer — observability for the analysis and mastering engine.

Modules:
    metrics     Prometheus metrics registry, record_* helpers and LatencyTimer.
"""
