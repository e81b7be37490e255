"""
Regime Classification & Allocation Engine
"""

__version__ = "1.0.1"
