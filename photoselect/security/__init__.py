"""
In-memory request security: CSRF tokens, rate limiting, session
tracking and request limits.
"""
