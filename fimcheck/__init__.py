"""
FIMCheck - File integrity verification against a trusted checksum baseline.
"""

__version__ = "1.3.0"
