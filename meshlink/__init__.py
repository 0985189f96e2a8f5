"""Wire protocol, message buffers and buffered asyncio TCP connections for mesh networks."""

__version__ = "0.1.0"
__all__ = ["protocol", "buffer", "plugin", "asynctcp", "connection"]