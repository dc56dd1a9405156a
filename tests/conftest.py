# ===============================================================================
# PYTEST CONFIGURATION FOR ANAF E-FACTURA
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/test_{module}.py mirrors efactura/{module}.py
- ANAF is never called: the HTTP transport is mocked per test

Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "tests.settings")

    # Configure Django
    django.setup()
