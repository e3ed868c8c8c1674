"""Persistence for ReplyDesk (Supabase/Postgres)."""

from replydesk.storage.schema import SCHEMA_SQL, get_schema_sql
from replydesk.storage.supabase_store import SupabaseStore

__all__ = ["SCHEMA_SQL", "SupabaseStore", "get_schema_sql"]
