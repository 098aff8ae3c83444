"""
Barnes-Hut factorizations provide fast *approximate* Gramian products by
aggregating the contributions of distant groups of points. This is the only
approximate path in ``tinygram`` and it is only used when requested
explicitly:

.. code-block:: python

    G = tinygram.gramian(kernel, X)
    F = tinygram.BarnesHut(G, theta=0.5)
    y = F @ x

The admissibility parameter ``theta`` trades accuracy for speed; ``theta=0``
reproduces the exact product.
"""

__all__ = ["BarnesHut", "SpatialTree", "build_tree"]

from tinygram.barnes_hut.factorization import BarnesHut
from tinygram.barnes_hut.tree import SpatialTree, build_tree
