"""
Test suite for the HTTP connectors.

Tests cover:
- Engine (rate limiting, poll cycles, record conversion, checkpoints)
- Script bridge (sandbox, constructors, marshaling, context pool)
- Connectors (configuration, source and destination against a local server)
- CLI host

Run tests with:
    pytest tests/
    pytest tests/test_scripting.py
    pytest tests/test_source.py -v
"""
