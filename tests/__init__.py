"""
RegScore Test Suite
===================

Test organization:
- tests/unit/                         - Shared config, logging and LLM adapters
- tests/services/document_analysis/   - Analysis engine

Run tests:
    pytest                                      # All tests
    pytest tests/unit                           # Shared modules only
    pytest tests/services/document_analysis     # Engine only
"""
