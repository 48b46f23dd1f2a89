"""Roles, permissions, the role-permission matrix and authorization checks."""
