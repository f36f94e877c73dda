"""
DATAPONTO deadline aggregation and notification services.
"""

__version__ = "1.0.0"
