"""Observability: Prometheus metrics for the progression engine"""
