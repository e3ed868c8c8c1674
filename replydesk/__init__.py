"""
ReplyDesk - AI review response service for Google Business Profile listings.

This package contains the core modules for the ReplyDesk system:
- google: Business Profile API adapter and OAuth credential store
- billing: Plan tiers and quota evaluation
- services: Review sync, response generation, lifecycle, notifications, digest
- scheduler: Periodic sync and digest drivers
- storage: Supabase repository and schema
- api: FastAPI application and endpoints
- config: Pydantic settings
- models: Domain models and enums
"""

__version__ = "0.1.0"
