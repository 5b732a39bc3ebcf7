"""
Plutus

Experimentation & dynamic pricing engine for storefront packages.
"""

__version__ = "0.1.0"
