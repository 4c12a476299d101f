"""
Observability helpers: performance metrics and memory logging.
"""
