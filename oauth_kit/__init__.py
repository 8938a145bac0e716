"""Cookie-backed multi-tenant OAuth 2.0 client sessions for FastAPI."""
