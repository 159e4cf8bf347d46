"""
Custom Exceptions Module

This module defines the exception hierarchy for the dome acoustics core,
providing more specific error types for better error handling.
"""

class DomeFieldError(Exception):
    """Base exception class for all dome acoustics errors."""
    pass


class ConfigurationError(DomeFieldError):
    """Error in pipeline configuration."""
    pass


class ValidationError(DomeFieldError):
    """Error during parameter validation."""
    pass


class InvalidGeometryError(ValidationError):
    """Dome geometry that cannot describe a physical cavity (non-positive radius or height)."""
    pass


class ProcessingError(DomeFieldError):
    """Error during block processing."""
    pass


class StreamingError(DomeFieldError):
    """Error during real-time streaming operations."""
    pass
