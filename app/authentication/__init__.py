"""
Authentication application.

Provides the email-based User model shared by renters, owners and
platform staff.

Usage:
    from authentication.models import User, UserRole
"""
