"""
Kernel build pipeline.

Key submodules:
- sources: kernel, header and watched dependency discovery
- staleness: modification-time based staleness of artifacts
- task: one ``hipcc`` compilation, with best-effort ``hipify-perl`` translation
- builder: :py:class:`rocbuild.build.builder.Builder`, fanning tasks out over a worker pool
- artifacts: code objects already present in the output directory
- bindings: generated Python module exposing the code objects
- specialize: one compilation unit per element type
"""

__all__ = ()
