"""awsinfra - Entry service with JWT-authenticated access control."""

__version__ = "0.1.0"

__all__ = ["__version__"]
