"""Monitoring utilities."""

from .metrics import PrometheusExporter

__all__ = ["PrometheusExporter"]
