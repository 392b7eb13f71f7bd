"""
Server Constants.
"""

PROJECT_NAME = "metacrud"

SCHEMA_SOURCE_FILE = "file"
SCHEMA_SOURCE_DATABASE = "database"

SESSION_CONTROLLER = "session"

# Methods reaching the request router
ROUTED_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]
