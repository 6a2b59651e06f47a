"""
Core infrastructure for sermon-tts.

    - config.py: Configuration loading and validation
    - errors.py: Error codes and exception hierarchy
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus metrics collection
"""
