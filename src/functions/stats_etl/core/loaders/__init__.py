"""Database loaders for the stats ETL."""

from .supabase_loader import DEFAULT_BATCH_SIZE, SupabaseLoader

__all__ = ["DEFAULT_BATCH_SIZE", "SupabaseLoader"]
