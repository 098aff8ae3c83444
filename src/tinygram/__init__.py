"""
``tinygram`` computes with large Gramian matrices, ``K[i, j] = k(x_i, y_j)``,
without ever storing them. It is built on top of `jax
<https://github.com/google/jax>`_ and `equinox
<https://github.com/patrick-kidger/equinox>`_. The primary way to use
``tinygram`` is by constructing a kernel from the building blocks in the
``kernels`` subpackage and passing it, along with your points, to
:func:`gramian`. The structure of the problem is detected once, at
construction, and products and solves then use the fastest algorithm that the
structure allows:

.. code-block:: python

    import tinygram

    G = tinygram.gramian(tinygram.kernels.Matern32(1.5), x)
    y = G @ v                  # FFT-based if x is a regular 1-D grid
    z = tinygram.solve(G, y)   # Levinson-Durbin for Toeplitz Gramians

For irregular point sets, :class:`BarnesHut` provides an approximate product
with a tunable accuracy.
"""

__version__ = "0.1.0"
__author__ = "tinygram developers"
__email__ = "tinygram@users.noreply.github.com"
__uri__ = "https://github.com/tinygram/tinygram"
__license__ = "BSD"
__description__ = "Structured Gramian matrices for kernel methods in JAX"

import logging as _logging

from tinygram import (
    barnes_hut as barnes_hut,
    gramians as gramians,
    kernels as kernels,
    linalg as linalg,
)
from tinygram.barnes_hut import BarnesHut as BarnesHut
from tinygram.errors import (
    DimensionMismatch as DimensionMismatch,
    GramianError as GramianError,
    NumericalWarning as NumericalWarning,
    SingularSystem as SingularSystem,
)
from tinygram.functional import multiply as multiply, solve as solve
from tinygram.gramians import (
    DenseGramian as DenseGramian,
    Gramian as Gramian,
    ToeplitzGramian as ToeplitzGramian,
    gramian as gramian,
)
from tinygram.points import RegularGrid as RegularGrid
from tinygram.sparse import sparsify as sparsify
from tinygram.traits import InputTrait as InputTrait

_logging.getLogger(__name__).addHandler(_logging.NullHandler())
