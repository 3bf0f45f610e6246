"""Asyncio cluster scheduler placing workload instances on registered workers."""

__version__ = "1.0.0"