"""Asyncio WebSocket proxy for Bluetooth Low Energy devices, over abstract Bluetooth backends."""

__version__ = "0.2.0"