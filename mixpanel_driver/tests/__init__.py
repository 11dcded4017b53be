"""
Test suite for Mixpanel driver.

Tests are organized into:
- test_client.py - Main driver functionality tests
- test_batcher.py - Batching, timers and concurrency
- test_transport.py - Response classification
- test_backend.py - requests session and retry policy
- test_event.py, test_validation.py, test_auth.py, test_config.py - Building blocks
- test_exceptions.py - Exception handling tests
- test_integration.py - Integration and workflow tests
- conftest.py - Pytest fixtures and configuration

Run tests with:
    pytest mixpanel_driver/tests/
    pytest mixpanel_driver/tests/ -v
    pytest mixpanel_driver/tests/ --cov=mixpanel_driver

Test coverage includes:
- Driver initialization and configuration
- Immediate, batched and import sends
- Error handling and recovery
- Workflows and integration scenarios
- Exception hierarchy
"""
