"""
openslots - availability resolution and slot generation for bookable providers.
"""

__version__ = "0.1.0"
