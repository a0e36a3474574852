"""
Utility functions for the kernel build pipeline.

This module provides utilities for:
- GPU detection with rocminfo
- HIPCC compiler interface
- Environment-driven settings
- Subprocess helpers
- Rendering with rich
"""

__all__ = ()
