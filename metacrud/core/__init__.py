"""Core building blocks shared by the persistence layer and the server."""
