"""
orbitdash - self-hosted host metrics and service bookmark dashboard.
"""

__version__ = "1.0.0"
