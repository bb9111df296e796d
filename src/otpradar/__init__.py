"""otpradar: find one-time passcodes across message providers."""

__all__ = ["__version__"]

__version__ = "0.1.0"
