"""
fitsocial - social fitness messaging backend
"""

__version__ = "0.1.0"
