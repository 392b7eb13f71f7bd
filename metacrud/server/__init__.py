"""
metacrud HTTP server.

FastAPI application exposing the schema-declared entities through the
generic request router.
"""
