"""
Integration tests for sessionlock's PostgreSQL stores.

These tests need a PostgreSQL instance, either via:
- testcontainers (automatic container provisioning)
- an existing server named by SESSIONLOCK_TEST_POSTGRES_URL

Tests are skipped automatically if neither is available.

Run integration tests:
    pytest tests/integration/ -v -m postgres
"""
