"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants for endpoints, thresholds and units
- exceptions: Custom exception hierarchy
"""
