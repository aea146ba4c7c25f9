"""
Image Post-Processing

Deterministic, synchronous operations over locally owned images:
1. Matting - chroma-key transparency with a feathered edge
2. Extension - outpaint canvas planning under size ceilings
3. Transform - resize and anchored aspect-ratio crop
"""
