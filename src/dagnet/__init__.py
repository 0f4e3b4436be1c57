"""
dagnet: a layer-graph execution engine for feed-forward neural networks.

Layers form a directed acyclic graph. Each pass is scheduled by fan-in
counters: a layer computes forward once all its predecessors have, and
backward once all of its gradient-producing successors have contributed.
"""

from .domain import *
from .domain import __all__ as _domain_all
from .infrastructure import *
from .infrastructure import __all__ as _infrastructure_all

__all__ = [*_domain_all, *_infrastructure_all]
