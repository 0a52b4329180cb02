#!/usr/bin/env python3
"""
Document Analysis Script
========================

Run statute analysis from a source checkout without installing the
package. Accepts the same options as ``regscore-analyze``.

Usage:
    python scripts/analyze_documents.py
    python scripts/analyze_documents.py --domain housing --force
    python scripts/analyze_documents.py --scores-only

Version: 0.1.0
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.document_analysis.cli import main


if __name__ == "__main__":
    sys.exit(main())
