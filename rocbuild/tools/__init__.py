"""
ROCm toolchain helpers: architecture tags and SDK discovery.
"""

__all__ = ()
