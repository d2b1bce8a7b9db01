"""Budget Engine - Cloud Functions.

This package contains the Python Cloud Functions for the AI construction
budget pipeline.

Architecture:
- Extraction: narrative -> atomic subtasks
- Item resolution: triage -> catalog search -> analyst -> estimation
- Validation: advisory technical review
- Roll-up: overhead, industrial benefit, IVA, global adjustment
"""

__version__ = "1.0.0"
