"""
rocbuild: Build-time compilation of HIP kernels into embeddable code objects.

rocbuild provides tools and utilities for:
- Locating the ROCm toolchain and detecting the target GPU architecture
- Compiling ``.hip`` kernels with ``hipcc`` in parallel, incrementally
- Generating a Python module exposing the compiled ``.hsaco`` code objects as constants

Key modules:
- rocbuild.build: Kernel build pipeline (sources, staleness, tasks, builder, bindings)
- rocbuild.tools: ROCm toolchain and architecture helpers
- rocbuild.utils: Utility functions (detection, environment, subprocess, rendering)
"""

__version__ = "0.1.0"

__all__ = (
    '__version__',
)
