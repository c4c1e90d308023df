"""Pytest configuration for ilab-e2e."""

# Prevent collection from source tree
collect_ignore = ["src"]


def pytest_configure(config):
    """Register custom test markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies, fast)")
    config.addinivalue_line(
        "markers", "integration: Integration tests (require K8s/S3 connectivity)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests (full provision/train/teardown workflow)"
    )
    config.addinivalue_line("markers", "slow: Tests that take minutes or longer")
