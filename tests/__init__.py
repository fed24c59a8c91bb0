"""
CareCompanion Test Suite
========================

Test Structure:
- test_tools/: recurrence expander and trigger evaluator
- test_services/: materialization, medications, tasks
- test_actions/: reminder dispatcher and webhook transport
- test_client/: device-side scheduler and API client
- test_api/: FastAPI routes
- conftest.py: Shared pytest fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test module
    pytest tests/test_api/

    # Run only marked tests
    pytest -m "unit"
    pytest -m "database"
"""
