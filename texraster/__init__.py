"""
texraster - LaTeX to PNG compilation with cached working directories

Compiles LaTeX documents (plus the closure files they depend on) into PNG
images by chaining an external toolchain: latex, dvips, ghostscript and netpbm.

Architecture:
- Rendering Context: source resolution, binary lookup, stage pipeline, compilation cache
- Building Context: build configuration, platform checks, multi-document builds
"""

__version__ = "0.1.0"
