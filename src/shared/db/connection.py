"""Shared Supabase connection utilities.

The ETL loader talks to Supabase through the asynchronous client; every
entry point (HTTP handler, CLI scripts) builds it from :class:`SupabaseConfig`.
"""

from __future__ import annotations
import os
import logging
from dataclasses import dataclass
from typing import Optional

from supabase import AsyncClient, acreate_client

logger = logging.getLogger(__name__)


@dataclass
class SupabaseConfig:
    """Configuration for Supabase connection.
    
    Attributes:
        url: Supabase project URL
        key: Supabase API key (service role key is required for writes)
        schema: Database schema to use (default: public)
    """
    url: str
    key: str
    schema: str = "public"
    
    @classmethod
    def from_env(
        cls,
        url_var: str = "SUPABASE_URL",
        key_var: str = "SUPABASE_KEY",
        schema_var: str = "SUPABASE_SCHEMA"
    ) -> SupabaseConfig:
        """Create configuration from environment variables.
        
        Args:
            url_var: Environment variable name for URL
            key_var: Environment variable name for key
            schema_var: Environment variable name for schema
        
        Returns:
            SupabaseConfig instance
        
        Raises:
            ValueError: If required environment variables are not set
        """
        url = (os.getenv(url_var) or "").strip().strip("\"'")
        key = (os.getenv(key_var) or "").strip().strip("\"'")
        schema = os.getenv(schema_var, "public")
        
        if not url or not key:
            raise ValueError(
                f"Missing required environment variables: {url_var} and/or {key_var}. "
                f"Please set them in your .env file or environment."
            )

        if not url.startswith(("http://", "https://")):
            raise ValueError(f"Invalid {url_var} format: {url}")
        
        return cls(url=url, key=key, schema=schema)


async def get_async_supabase_client(config: Optional[SupabaseConfig] = None) -> AsyncClient:
    """Create an asynchronous Supabase client.

    Every query built from the returned client must be awaited at
    ``execute()``.

    Example:
        >>> client = await get_async_supabase_client()
        >>> response = await client.table("etl_runs").select("*").execute()
    """
    if config is None:
        config = SupabaseConfig.from_env()

    logger.debug("Creating async Supabase client for %s", config.url)

    client = await acreate_client(config.url, config.key)
    return _apply_schema(client, config.schema)


def _apply_schema(client, schema: Optional[str]):
    """Scope ``client`` to ``schema`` when it is not the default one."""
    if not schema or schema == "public":
        return client

    schema_fn = getattr(client, "schema", None)
    if not callable(schema_fn):
        logger.warning(
            "Supabase client does not support schema override; continuing with default schema"
        )
        return client

    scoped_client = schema_fn(schema)
    logger.debug("Using schema: %s", schema)
    return scoped_client if scoped_client is not None else client
