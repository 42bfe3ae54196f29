"""Ingestion layer.

Adapters that turn raw store notifications into normalized state updates and
alert entries.
"""

__all__: list[str] = []
