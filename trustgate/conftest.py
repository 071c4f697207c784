"""Pytest configuration and fixtures for trustgate tests.

Sets up the test environment before any tests run, so settings are loaded
with test values whenever the app is created.
"""

import os

# 48 characters: comfortably above the minimum secret length
TEST_CSRF_SECRET = "test-secret-0123456789abcdef0123456789abcdef-xyz"


def pytest_configure(config):
    """Configure test environment before any tests run.

    Key test settings:
    - ENVIRONMENT=test (not development) - no dev-only permissiveness
    - CSRF_SECRET set to a valid test secret
    - CORS_ORIGINS includes localhost:3000 for cross-origin test requests
    - LIMITS_BACKEND=memory so no redis server is needed
    """
    config.addinivalue_line("markers", "security: Security-related tests (required gate)")
    config.addinivalue_line("markers", "csrf: Anti-forgery token tests (required gate)")
    config.addinivalue_line("markers", "slow: Slow-running tests (excluded from fast)")
    config.addinivalue_line("markers", "integration: Integration tests requiring external services")

    os.environ.setdefault("ENVIRONMENT", "test")
    os.environ.setdefault("CSRF_SECRET", TEST_CSRF_SECRET)
    os.environ.setdefault("LIMITS_BACKEND", "memory")

    cors_origins = os.environ.get("CORS_ORIGINS", "")
    if "localhost:3000" not in cors_origins:
        cors_origins = f"{cors_origins},http://localhost:3000" if cors_origins else "http://localhost:3000"
        os.environ["CORS_ORIGINS"] = cors_origins
