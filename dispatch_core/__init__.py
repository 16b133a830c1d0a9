"""
Smart Dispatch Router 核心包
"""

__version__ = "0.1.0"
