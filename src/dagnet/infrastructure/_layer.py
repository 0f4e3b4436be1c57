"""
Layer records.

A `Layer` is a plain record living in a `Graph` arena. It carries:

- identity: ``name``, ``kind`` (the dispatch tag) and ``handle`` (its index
  in the arena)
- orientation: ``transposed``, the physical layout it asks of the buffers it
  reads and writes
- capabilities: ``grad_consumer`` / ``grad_producer``
- edges: ``prev`` / ``next`` as integer handles into the arena
- buffers: ``acts``, ``acts_grad`` and kind-specific ``scratch`` buffers
- fan-in state: ``rcvd_fwd``, ``rcvd_bwd``, ``bwd_fired`` and the
  precomputed ``grad_producers_next``
- kind data: a frozen ``params`` record and an ordered mapping of
  `WeightGroup` objects

Behaviour that differs between kinds is not implemented here; the graph
looks up the kind's capability table. Records only implement what every
kind shares: fan-in reset and the weight-group driver steps (update and
host/device copies), which are no-ops for layers without weights.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from ..domain._layer_kind import LayerKind
from ..domain._pass_type import PassType
from ._buffer import EMPTY, BufferView
from ._weights import WeightGroup


@dataclass(eq=False)
class Layer:
    """
    Arena entry describing one layer of a graph.

    Attributes
    ----------
    name : str
        Unique layer name.
    kind : LayerKind
        Kind tag used for capability-table dispatch.
    params : Any
        Kind-specific frozen parameter record.
    outputs : int
        Number of features per case this layer produces (0 for cost layers).
    transposed : bool
        Requested physical orientation of the buffers this layer touches.
    grad_consumer : bool
        Whether the layer accepts activation gradients from successors.
    grad_producer : bool
        Whether the layer produces activation gradients for predecessors.
    weights : Dict[str, WeightGroup]
        Ordered weight groups; empty for weightless kinds.
    """

    name: str
    kind: LayerKind
    params: Any = None
    outputs: int = 0
    transposed: bool = False
    grad_consumer: bool = True
    grad_producer: bool = True
    weights: Dict[str, WeightGroup] = field(default_factory=dict)

    handle: int = -1
    prev: List[int] = field(default_factory=list)
    next: List[int] = field(default_factory=list)
    grad_producers_next: int = 0

    acts: BufferView = EMPTY
    acts_grad: BufferView = EMPTY
    scratch: Dict[str, BufferView] = field(default_factory=dict)
    cost_values: Tuple[float, ...] = ()

    rcvd_fwd: int = 0
    rcvd_bwd: int = 0
    bwd_fired: bool = False
    last_pass: PassType = PassType.TRAIN

    def __repr__(self) -> str:
        return (
            f"Layer(name={self.name!r}, kind={self.kind.value!r}, "
            f"handle={self.handle}, prev={self.prev}, next={self.next})"
        )

    @property
    def has_weights(self) -> bool:
        return bool(self.weights)

    def reset(self) -> None:
        """
        Zero both fan-in counters ahead of a new pass.
        """
        self.rcvd_fwd = 0
        self.rcvd_bwd = 0
        self.bwd_fired = False

    def weight(self, name: str) -> WeightGroup:
        """
        Return the weight group called ``name``.

        Raises
        ------
        KeyError
            If the layer owns no such group.
        """
        try:
            return self.weights[name]
        except KeyError:
            raise KeyError(
                f"layer '{self.name}' has no weight group '{name}'; "
                f"available: {list(self.weights)}"
            ) from None

    def update(self, batch_size: int) -> None:
        """
        Apply the update rule to every weight group.

        The momentum term is suppressed when the gradients came from a
        gradient-verification pass.
        """
        for group in self.weights.values():
            group.update(batch_size, self.last_pass)

    def copy_to_host(self) -> None:
        """
        Snapshot every weight group's value and increment into host memory.
        """
        for group in self.weights.values():
            group.copy_to_host()

    def copy_to_device(self) -> None:
        """
        Write every weight group's host copies back to backend memory.
        """
        for group in self.weights.values():
            group.copy_to_device()
