"""Natours — tour booking backend.

REST API for tours, reviews and user accounts with JWT authentication,
role-based access control and email password reset.
"""

__version__ = "0.1.0"
