"""
API package - HTTP plumbing shared by the route blueprints.

This package provides the global middleware (request id, error envelope).
"""
