"""
Flicksy - local credential and secret storage core.
"""

__version__ = "0.1.0"
