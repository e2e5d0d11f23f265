"""
Preva - home health care coordination for nurses and their patients.
"""

__version__ = "0.1.0"
