"""
Float Planner - river linear referencing and condition engine.
"""

__version__ = "0.1.0"
