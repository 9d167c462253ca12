"""RabbitStockAPI: live Trading 212 portfolio prices over HTTP and WebSocket."""

__version__ = "1.0.0"
