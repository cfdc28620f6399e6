"""
Permission management feature module.

Permissions are named capabilities granted to groups.
"""
