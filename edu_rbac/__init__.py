"""Role and permission authorization service for the academic records backend."""

__version__ = '1.0.0'
