"""
Observability for home incidents: loguru setup, Prometheus metrics and
the health/HTTP application.
"""
