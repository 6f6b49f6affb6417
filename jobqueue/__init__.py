"""
Rental Marketplace Job Queue

A durable, retrying, concurrency-bounded background job queue backed by Redis
sorted sets, with cron-driven recurring jobs and Prometheus/OpenTelemetry
observability.
"""

__version__ = "1.0.0"
