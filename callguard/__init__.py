"""
CallGuard — live call scam detection backend.
"""

__version__ = "1.0.0"
