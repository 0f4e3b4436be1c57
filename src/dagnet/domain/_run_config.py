"""
Per-run engine configuration.

`RunConfig` replaces process-wide memory switches with an explicit value
that is handed to a `Graph` when it is created and consulted by every
layer's truncation step.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RunConfig:
    """
    Buffer-retention and numeric settings for one graph.

    Parameters
    ----------
    retain_activations : bool, optional
        If False, a layer releases its activation buffer (and the transient
        buffers it derived during forward) as soon as its own backward step
        has finished. Defaults to True.
    retain_activation_gradients : bool, optional
        If False, a layer releases its activation-gradient buffer (and the
        transient buffers it derived during backward) as soon as its own
        backward step has finished. Defaults to True.
    dtype : str, optional
        Floating-point dtype name used for weights and computed buffers.
        Defaults to ``"float64"``.

    Notes
    -----
    Retaining buffers trades memory for avoiding reallocation on the next
    pass.
    """

    retain_activations: bool = True
    retain_activation_gradients: bool = True
    dtype: str = "float64"
