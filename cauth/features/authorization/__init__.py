"""
Authorization checks: does a user (or a session token) hold a permission.
"""
