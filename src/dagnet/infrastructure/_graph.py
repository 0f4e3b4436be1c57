"""
Layer-graph arena and pass scheduler.

`Graph` owns every `Layer` record in an indexable arena; edges are integer
handles into it. Kind-specific work is looked up in the layer kind's
capability table, so the scheduler itself never branches on kinds.

Forward protocol
----------------
Every arrival at a layer increments its forward fan-in counter. When the
counter reaches the number of predecessors, the layer gathers its
predecessors' activations (in predecessor order), computes its own
activations and schedules its successors.

Backward protocol
-----------------
A layer fires once its backward fan-in counter equals the number of its
successors that produce gradients. Firing runs, in order:

1. the common backward step (activation derivative)
2. if the layer produces gradients, one input-gradient contribution per
   gradient-consuming predecessor, each followed by an increment of that
   predecessor's backward counter
3. the weight-gradient step
4. buffer truncation according to the `RunConfig`

and then schedules the gradient-consuming predecessors. A contribution
overwrites the predecessor's gradient buffer when the predecessor's counter
is still 0 and accumulates into it otherwise, so the final buffer is the
order-independent sum of all contributions.

Both traversals use an explicit LIFO work-list instead of recursion, so graph
depth is not bounded by the interpreter's call stack.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..domain._errors import (
    ConfigurationError,
    GraphCycleError,
    NoDataSuppliedError,
    ProtocolError,
    ShapeMismatchError,
)
from ..domain._layer_kind import LayerKind
from ..domain._pass_type import PassType
from ..domain._run_config import RunConfig
from ._buffer import EMPTY, BufferView
from ._layer import Layer
from .layers import get_layer_ops

logger = logging.getLogger(__name__)

LayerRef = Union[int, str, Layer]


class Graph:
    """
    Arena of layers plus the forward/backward scheduler.

    Parameters
    ----------
    run_config : RunConfig, optional
        Buffer-retention policy and storage dtype for every pass run on this
        graph. Defaults to retaining all buffers.
    """

    def __init__(self, run_config: Optional[RunConfig] = None) -> None:
        self.run_config = run_config or RunConfig()
        self._layers: List[Layer] = []
        self._handles: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self._layers)

    def __contains__(self, name: object) -> bool:
        return name in self._handles

    def __repr__(self) -> str:
        return f"Graph(layers={[layer.name for layer in self._layers]})"

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------
    def add_layer(self, layer: Layer) -> int:
        """
        Place an unconnected layer into the arena.

        Returns
        -------
        int
            The layer's handle.

        Raises
        ------
        ConfigurationError
            If the name is already taken or the layer already belongs to a
            graph.
        """
        if layer.name in self._handles:
            raise ConfigurationError("duplicate layer name", layer.name)
        if layer.handle != -1 or layer.prev or layer.next:
            raise ConfigurationError("layer is already part of a graph", layer.name)
        get_layer_ops(layer.kind)
        layer.handle = len(self._layers)
        self._layers.append(layer)
        self._handles[layer.name] = layer.handle
        return layer.handle

    def handle(self, name: str) -> int:
        """
        Return the handle of the layer called ``name``.

        Raises
        ------
        KeyError
            If no such layer exists.
        """
        try:
            return self._handles[name]
        except KeyError:
            raise KeyError(f"no layer named {name!r}") from None

    def layer(self, ref: LayerRef) -> Layer:
        """
        Return a layer by handle, name or record.
        """
        return self._layers[self._resolve(ref)]

    def _resolve(self, ref: LayerRef) -> int:
        if isinstance(ref, Layer):
            ref = ref.handle
        if isinstance(ref, str):
            return self.handle(ref)
        if not 0 <= ref < len(self._layers):
            raise IndexError(f"layer handle {ref} out of range")
        return int(ref)

    def connect(self, src: LayerRef, dst: LayerRef) -> None:
        """
        Add the directed edge ``src -> dst``.

        Both endpoints' edge lists are updated, and ``src``'s count of
        gradient-producing successors grows by one if ``dst`` produces
        gradients.

        Raises
        ------
        GraphCycleError
            If the edge would close a cycle (including a self-loop).
        """
        s, d = self._resolve(src), self._resolve(dst)
        if self._reachable(d, s):
            raise GraphCycleError(self._layers[s].name, self._layers[d].name)
        a, b = self._layers[s], self._layers[d]
        a.next.append(d)
        b.prev.append(s)
        a.grad_producers_next += int(b.grad_producer)

    def add_predecessor(self, layer: LayerRef, prev: LayerRef) -> None:
        """Append ``prev`` to ``layer``'s predecessors (edge ``prev -> layer``)."""
        self.connect(prev, layer)

    def add_successor(self, layer: LayerRef, next: LayerRef) -> None:
        """Append ``next`` to ``layer``'s successors (edge ``layer -> next``)."""
        self.connect(layer, next)

    def _reachable(self, start: int, goal: int) -> bool:
        seen = set()
        stack = [start]
        while stack:
            h = stack.pop()
            if h == goal:
                return True
            if h in seen:
                continue
            seen.add(h)
            stack.extend(self._layers[h].next)
        return False

    def sources(self) -> Tuple[Layer, ...]:
        return tuple(layer for layer in self._layers if not layer.prev)

    def sinks(self) -> Tuple[Layer, ...]:
        return tuple(layer for layer in self._layers if not layer.next)

    def weight_layers(self) -> Tuple[Layer, ...]:
        return tuple(layer for layer in self._layers if layer.has_weights)

    def cost_layers(self) -> Tuple[Layer, ...]:
        return tuple(layer for layer in self._layers if layer.kind.is_cost)

    # ------------------------------------------------------------------
    # Buffer access for capability tables
    # ------------------------------------------------------------------
    def input_matrix(self, layer: Layer, input_index: int) -> np.ndarray:
        """
        Logical activations of ``layer``'s predecessor ``input_index``, in
        ``layer``'s orientation.

        Raises
        ------
        ProtocolError
            If the predecessor has no activations (not yet computed this
            pass, or already released).
        """
        prev = self._layers[layer.prev[input_index]]
        if prev.acts.is_empty:
            raise ProtocolError(
                f"layer '{layer.name}' reads activations of '{prev.name}', "
                "which are not available"
            )
        return prev.acts.oriented(layer.transposed).matrix

    def accumulate_input_gradient(
        self,
        layer: Layer,
        input_index: int,
        compute: Callable[[Optional[np.ndarray], float], np.ndarray],
    ) -> None:
        """
        Write ``layer``'s contribution into a predecessor's gradient buffer.

        Parameters
        ----------
        layer : Layer
            Contributing layer.
        input_index : int
            Index of the predecessor in ``layer.prev``.
        compute : Callable[[ndarray or None, float], ndarray]
            Receives the current buffer contents and ``scale_target`` (0 to
            overwrite, 1 to accumulate) and returns the new contents.
        """
        prev = self._layers[layer.prev[input_index]]
        scale_target = 0.0 if prev.rcvd_bwd == 0 else 1.0
        target = None if prev.acts_grad.is_empty else prev.acts_grad.matrix
        prev.acts_grad = BufferView.wrap(compute(target, scale_target), layer.transposed)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------
    def reset(self) -> None:
        """
        Zero every layer's fan-in counters ahead of a new pass.
        """
        for layer in self._layers:
            layer.reset()

    def forward(self, ref: LayerRef, pass_type: PassType = PassType.TRAIN) -> None:
        """
        Register one forward arrival at a layer and run everything that
        becomes ready as a result.

        Raises
        ------
        NoDataSuppliedError
            If the layer has no predecessors; sources must be driven with
            `forward_inputs`.
        """
        layer = self.layer(ref)
        if not layer.prev:
            raise NoDataSuppliedError(layer.name)
        self._propagate([layer.handle], pass_type)

    def forward_inputs(
        self,
        ref: LayerRef,
        inputs: Sequence[np.ndarray],
        pass_type: PassType = PassType.TRAIN,
    ) -> None:
        """
        Compute a layer from an explicit input list, then drive its
        successors.

        Data layers receive the whole external list and select their item by
        ``data_idx``. Other layers need one input per predecessor.

        Raises
        ------
        ShapeMismatchError
            If a non-data layer receives the wrong number of inputs.
        """
        layer = self.layer(ref)
        mats = [np.asarray(x) for x in inputs]
        if layer.kind is not LayerKind.DATA and len(mats) != len(layer.prev):
            raise ShapeMismatchError(
                f"layer '{layer.name}' has {len(layer.prev)} predecessors, "
                f"got {len(mats)} inputs"
            )
        self._fprop(layer, mats, pass_type)
        self._propagate(list(reversed(layer.next)), pass_type)

    def _propagate(self, stack: List[int], pass_type: PassType) -> None:
        while stack:
            layer = self._layers[stack.pop()]
            layer.rcvd_fwd += 1
            if layer.rcvd_fwd != len(layer.prev):
                continue
            inputs = [self.input_matrix(layer, i) for i in range(len(layer.prev))]
            self._fprop(layer, inputs, pass_type)
            stack.extend(reversed(layer.next))

    def _fprop(self, layer: Layer, inputs: List[np.ndarray], pass_type: PassType) -> None:
        logger.debug("forward %s (%s)", layer.name, pass_type.value)
        ops = get_layer_ops(layer.kind)
        out = ops.compute_forward(self, layer, inputs, pass_type)
        layer.acts = BufferView.wrap(out, layer.transposed)
        layer.last_pass = pass_type

    def backward(self, ref: LayerRef, pass_type: PassType = PassType.TRAIN) -> None:
        """
        Register one backward visit at a layer and run everything that
        becomes ready as a result.

        A visit to a layer whose gradient fan-in is not yet complete, or
        which has already fired this pass, does nothing.
        """
        self._backpropagate([self._resolve(ref)], pass_type)

    def _backpropagate(self, stack: List[int], pass_type: PassType) -> None:
        while stack:
            layer = self._layers[stack.pop()]
            if not (layer.grad_consumer or layer.grad_producer):
                continue
            if layer.bwd_fired or layer.rcvd_bwd != layer.grad_producers_next:
                continue
            layer.bwd_fired = True
            self._bprop(layer, pass_type)
            stack.extend(
                h for h in reversed(layer.prev) if self._layers[h].grad_consumer
            )

    def _bprop(self, layer: Layer, pass_type: PassType) -> None:
        logger.debug("backward %s (%s)", layer.name, pass_type.value)
        ops = get_layer_ops(layer.kind)
        incoming = layer.acts_grad.oriented(layer.transposed).matrix
        grad = ops.compute_common_backward(self, layer, incoming, pass_type)
        if layer.grad_producer:
            for i, h in enumerate(layer.prev):
                prev = self._layers[h]
                if prev.grad_consumer:
                    ops.compute_input_gradient(self, layer, grad, i, pass_type)
                    prev.rcvd_bwd += 1
        ops.compute_weight_gradients(self, layer, grad, pass_type)
        self._truncate(layer, ops.truncate_transient_buffers)
        layer.last_pass = pass_type

    def _truncate(
        self, layer: Layer, truncate_transients: Callable[[Layer, RunConfig], None]
    ) -> None:
        config = self.run_config
        if not config.retain_activations:
            layer.acts = EMPTY
        if not config.retain_activation_gradients:
            layer.acts_grad = EMPTY
        truncate_transients(layer, config)
        if not (config.retain_activations and config.retain_activation_gradients):
            logger.debug("truncated buffers of %s", layer.name)

    # ------------------------------------------------------------------
    # Driver helpers
    # ------------------------------------------------------------------
    def run_forward(
        self, data: Sequence[np.ndarray], pass_type: PassType = PassType.TRAIN
    ) -> None:
        """
        Reset the graph and feed ``data`` to every source layer.

        Raises
        ------
        NoDataSuppliedError
            If a source is not a data layer.
        """
        self.reset()
        for layer in self.sources():
            if layer.kind is LayerKind.DATA:
                self.forward_inputs(layer.handle, data, pass_type)
            else:
                self.forward(layer.handle, pass_type)

    def run_backward(self, pass_type: PassType = PassType.TRAIN) -> None:
        """
        Start backward at every cost layer.
        """
        for layer in self.cost_layers():
            self.backward(layer.handle, pass_type)

    def train_step(
        self, data: Sequence[np.ndarray], batch_size: Optional[int] = None
    ) -> float:
        """
        One training step: forward, backward and weight update.

        Parameters
        ----------
        data : Sequence[np.ndarray]
            External matrices for the data layers.
        batch_size : int, optional
            Number of cases; defaults to the row count of ``data[0]``.

        Returns
        -------
        float
            `total_cost` of the forward pass.
        """
        self.run_forward(data, PassType.TRAIN)
        self.run_backward(PassType.TRAIN)
        if batch_size is None:
            batch_size = int(np.asarray(data[0]).shape[0])
        self.update(batch_size)
        return self.total_cost()

    def costs(self) -> Dict[str, Tuple[float, ...]]:
        """
        Metric sequences of every cost layer from the last forward pass.
        """
        return {layer.name: tuple(layer.cost_values) for layer in self.cost_layers()}

    def total_cost(self) -> float:
        """
        Coefficient-weighted sum of the first metric of every cost layer.
        """
        return float(
            sum(
                layer.params.coeff * layer.cost_values[0]
                for layer in self.cost_layers()
                if layer.cost_values
            )
        )

    def update(self, batch_size: int) -> None:
        for layer in self.weight_layers():
            layer.update(batch_size)

    def copy_to_host(self) -> None:
        for layer in self.weight_layers():
            layer.copy_to_host()

    def copy_to_device(self) -> None:
        for layer in self.weight_layers():
            layer.copy_to_device()

    @contextmanager
    def host_weights(self) -> Iterator["Graph"]:
        """
        Scope in which host copies of all weights may be read or edited.

        Host copies are taken on entry and written back on normal exit. If
        the body raises, the backend weights are left untouched.
        """
        self.copy_to_host()
        yield self
        self.copy_to_device()
