"""
Closed set of layer kinds.

Each layer record in a graph carries exactly one `LayerKind`. The kind is
the key into the capability table registry: the engine never dispatches on
the Python class of a layer, only on this tag.

The enum values are the textual type tags used in layer configuration
records.
"""

from __future__ import annotations

from enum import Enum


class LayerKind(Enum):
    """
    Enumeration of supported layer kinds and their configuration tags.
    """

    DATA = "data"
    FULLY_CONNECTED = "fc"
    CONVOLUTION = "conv"
    POOLING = "pool"
    RESPONSE_NORM = "rnorm"
    CONTRAST_NORM = "cnorm"
    SOFTMAX = "softmax"
    COST_LOGREG = "cost.logreg"
    COST_SUM2 = "cost.sum2"

    @property
    def is_cost(self) -> bool:
        """
        Return whether this kind is a cost (sink) layer.

        Returns
        -------
        bool
            True if the type tag lives in the ``cost.`` namespace.
        """
        return self.value.startswith("cost.")

    @classmethod
    def from_tag(cls, tag: str) -> "LayerKind | None":
        """
        Resolve a textual type tag.

        Parameters
        ----------
        tag : str
            Type tag such as ``"fc"`` or ``"cost.logreg"``.

        Returns
        -------
        LayerKind or None
            The matching kind, or None if the tag is unknown.
        """
        for kind in cls:
            if kind.value == tag:
                return kind
        return None
