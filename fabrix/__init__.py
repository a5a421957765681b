"""
fabrix: fabric-composition extraction and grading for product pages.
"""

__version__ = "0.3.0"
