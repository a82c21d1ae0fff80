"""
safewalk — Location & emergency alert engine for a personal-safety companion.

Run the API with:
    uvicorn safewalk.main:app --reload --port 8000
"""

__version__ = "1.0.0"
