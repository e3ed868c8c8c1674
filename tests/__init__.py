"""
ReplyDesk Test Suite.

- unit/: Service, adapter and job tests against the in-memory Supabase fake
- integration/: HTTP surface through FastAPI's TestClient
- fakes.py: In-memory stand-in for the supabase-py client
- conftest.py: Shared fixtures and test configuration

Run tests with: pytest
Run with coverage: pytest --cov=replydesk
"""
