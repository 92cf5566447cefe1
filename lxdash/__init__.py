"""Dashboard support libraries: TLSF allocator, FAT-style file access, JPEG decode queue and configuration helpers."""

__version__ = "0.1.0"
__all__ = ["config", "fileio", "jpeg_queue", "tlsf", "tlsf_bits"]