"""
Structured linear algebra kernels used by the Gramian representations. These
functions operate directly on generating sequences and never form the dense
matrix.
"""

__all__ = ["circulant_embedding", "toeplitz_matmul", "levinson_solve"]

from tinygram.linalg.toeplitz import (
    circulant_embedding,
    levinson_solve,
    toeplitz_matmul,
)
