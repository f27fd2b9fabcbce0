"""Physics modules: root finding, power-law band fits, thermal balance and the reference model."""
from . import callables, powerlaw, reference, rootfind, thermal

__all__ = ["callables", "powerlaw", "reference", "rootfind", "thermal"]
