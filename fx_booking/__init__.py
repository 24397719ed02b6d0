"""FX booking transformation engine.

Turns grouped FX staging records into normalized booking instructions using
per-book-code JSON transformation rules.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
