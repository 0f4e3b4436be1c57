"""
NumPy tensor backend: matrix primitives and the domain kernels (convolution,
pooling, normalization, softmax) the layer kinds invoke.
"""
