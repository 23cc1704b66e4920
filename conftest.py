"""Pytest configuration for Pharma Inspections."""


def pytest_configure(config):
    """Configure pytest with custom settings."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "gxp: regulated behaviour (audit trail, access control)"
    )
    config.addinivalue_line(
        "markers", "scenario: end-to-end scenario across several components"
    )
