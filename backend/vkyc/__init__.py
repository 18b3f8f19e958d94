"""
Video-KYC verification backend: session authentication & lifecycle.
"""

__version__ = "1.0.0"
