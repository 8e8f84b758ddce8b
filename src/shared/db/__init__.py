"""Shared database utilities."""

from .connection import SupabaseConfig, get_async_supabase_client

__all__ = ["get_async_supabase_client", "SupabaseConfig"]
