"""
colorextract Colors Module

Provides color space conversion, region partitioning, bucket quantization
and histogram merging for palette extraction.
"""
