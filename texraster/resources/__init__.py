"""
Bundled closure files.

Closure references starting with "/" resolve here instead of the sources root,
e.g. "/rasterpreview.sty".
"""
