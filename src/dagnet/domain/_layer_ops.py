"""
Layer capability table contract.

The engine dispatches every kind-specific step through a capability table
looked up by `LayerKind`. This module defines the structural contract such a
table must satisfy. Implementations live in the infrastructure layer, one
table per kind, and are registered against their kind.

The table entries mirror the phases of the forward/backward protocol:

- ``compute_forward``: produce this layer's activations from its inputs
- ``compute_common_backward``: fold shared work (activation derivative) into
  the incoming gradient
- ``compute_input_gradient``: contribute to one predecessor's activation
  gradient, honouring the overwrite/accumulate rule
- ``compute_weight_gradients``: fill weight-group gradient accumulators
- ``truncate_transient_buffers``: release kind-specific scratch buffers
- ``check_gradients``: compare analytic weight gradients with finite
  differences

Notes
-----
Structural typing is used so that tables can be plain dataclasses of
callables rather than subclasses of a shared base.
"""

from __future__ import annotations

from typing import Any, List, Protocol, Sequence, runtime_checkable

from ._pass_type import PassType
from ._run_config import RunConfig


@runtime_checkable
class ILayerOps(Protocol):
    """
    Domain-level capability table for one layer kind.

    All entries receive the owning graph and the layer record so that
    kind-specific code can reach predecessor and successor records through
    the graph's handles.
    """

    def compute_forward(
        self, graph: Any, layer: Any, inputs: Sequence[Any], pass_type: PassType
    ) -> Any:
        """
        Compute the layer's activations.

        Parameters
        ----------
        graph : Graph
            Owning graph.
        layer : Layer
            Layer record being computed.
        inputs : Sequence[ndarray]
            Logical (cases x features) input matrices, in predecessor order.
        pass_type : PassType
            Kind of pass in flight.

        Returns
        -------
        ndarray
            Logical activation matrix.
        """
        ...

    def compute_common_backward(
        self, graph: Any, layer: Any, grad: Any, pass_type: PassType
    ) -> Any:
        """
        Apply work shared by all predecessor gradients and weight gradients.

        Returns
        -------
        ndarray
            Gradient with respect to the layer's pre-activation output.
        """
        ...

    def compute_input_gradient(
        self, graph: Any, layer: Any, grad: Any, input_index: int, pass_type: PassType
    ) -> None:
        """
        Contribute this layer's share of predecessor ``input_index``'s
        activation gradient.
        """
        ...

    def compute_weight_gradients(
        self, graph: Any, layer: Any, grad: Any, pass_type: PassType
    ) -> None:
        """
        Fill the gradient accumulators of every weight group the layer owns.
        """
        ...

    def truncate_transient_buffers(self, layer: Any, config: RunConfig) -> None:
        """
        Release kind-specific scratch buffers according to ``config``.
        """
        ...

    def check_gradients(
        self,
        graph: Any,
        layer: Any,
        data: Sequence[Any],
        tolerance: float = 1e-4,
        epsilon: float = 1e-5,
    ) -> List[Any]:
        """
        Verify the layer's weight gradients against central differences.

        Returns
        -------
        list[GradientCheckResult]
            One result per weight group checked.
        """
        ...
