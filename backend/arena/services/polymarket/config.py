from pydantic import BaseModel


class PolymarketConfig(BaseModel):
    """Configuration for the Polymarket Gamma API client."""

    base_url: str = "https://gamma-api.polymarket.com"
    timeout_seconds: float = 10.0
    list_timeout_seconds: float = 45.0
    max_connections: int = 50
    max_keepalive_connections: int = 10
    default_page_size: int = 1000
    max_retries: int = 3
