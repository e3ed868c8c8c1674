"""Prometheus metrics for ReplyDesk."""
