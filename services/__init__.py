"""
RegScore Services
=================

Services for the RegScore statute analysis platform.

Services:
- document_analysis: Question answering, scoring and gap analysis over statutes
"""

__all__ = [
    "document_analysis",
]
