"""
home2grafana exporter package.

Polls smart-home devices on an adaptive schedule and republishes their
readings as Prometheus metrics and an HTML overview table.
"""
