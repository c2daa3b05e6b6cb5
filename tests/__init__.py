"""
Booking Orchestrator Tests

Running Tests:
    # Run all unit tests
    pytest tests/unit -v

    # Run one module
    pytest tests/unit/test_booking_engine.py -v

Shared in-memory fakes for the calendar and messaging gateway live in
tests/fakes.py.
"""
