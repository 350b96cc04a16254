"""
Add-on (bonus) payment calculation engine for visit records.
"""

__version__ = "0.1.0"
