"""
colorextract

Parallel image color extraction engine: region-partitioned bucket
quantization, perceptual de-duplication and cached, cancellable dispatch.
"""

__version__ = "1.0.0"
