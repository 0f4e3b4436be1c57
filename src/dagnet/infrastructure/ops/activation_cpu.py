"""
Activation functions and their derivatives (CPU, NumPy).

Each activation is registered under one or more names together with a
derivative expressed in terms of the activation's *output*. Layers keep only
their outputs, so the backward pass never needs the pre-activation input.

Registered names
----------------
- ``ident`` / ``linear``: f(x) = x
- ``relu``: f(x) = max(0, x)
- ``logistic``: f(x) = 1 / (1 + exp(-x))
- ``tanh``: f(x) = tanh(x)
- ``softrelu``: f(x) = log(1 + exp(x))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np

from ...domain._errors import UnknownActivationError


@dataclass(frozen=True)
class Activation:
    """
    An activation function paired with its output-space derivative.

    Attributes
    ----------
    name : str
        Canonical registry name.
    forward : Callable[[np.ndarray], np.ndarray]
        Elementwise function.
    derivative : Callable[[np.ndarray], np.ndarray]
        Elementwise derivative evaluated from the function's output.
    """

    name: str
    forward: Callable[[np.ndarray], np.ndarray]
    derivative: Callable[[np.ndarray], np.ndarray]

    def apply_gradient(self, acts: np.ndarray, grad: np.ndarray) -> np.ndarray:
        """
        Chain the incoming gradient through the activation.

        Parameters
        ----------
        acts : np.ndarray
            Activation outputs produced in forward.
        grad : np.ndarray
            Gradient with respect to the outputs.

        Returns
        -------
        np.ndarray
            Gradient with respect to the pre-activation values.
        """
        if self.name == "ident":
            return grad
        return grad * self.derivative(acts)


_ACTIVATIONS: Dict[str, Activation] = {}


def register_activation(act: Activation, *aliases: str) -> Activation:
    """
    Register an activation under its name and any aliases.
    """
    _ACTIVATIONS[act.name] = act
    for alias in aliases:
        _ACTIVATIONS[alias] = act
    return act


def get_activation(name: str, layer: str | None = None) -> Activation:
    """
    Look up a registered activation.

    Raises
    ------
    UnknownActivationError
        If ``name`` is not registered.
    """
    try:
        return _ACTIVATIONS[name]
    except KeyError:
        raise UnknownActivationError(name, layer) from None


def _logistic(x: np.ndarray) -> np.ndarray:
    # Split by sign so exp() never overflows.
    out = np.empty_like(x)
    pos = x >= 0
    out[pos] = 1.0 / (1.0 + np.exp(-x[pos]))
    ex = np.exp(x[~pos])
    out[~pos] = ex / (1.0 + ex)
    return out


register_activation(
    Activation("ident", lambda x: x, lambda y: np.ones_like(y)), "linear"
)
register_activation(
    Activation(
        "relu",
        lambda x: np.maximum(x, 0.0),
        lambda y: (y > 0.0).astype(y.dtype),
    )
)
register_activation(Activation("logistic", _logistic, lambda y: y * (1.0 - y)))
register_activation(Activation("tanh", np.tanh, lambda y: 1.0 - y * y))
register_activation(
    Activation(
        "softrelu",
        lambda x: np.logaddexp(0.0, x),
        lambda y: -np.expm1(-y),
    )
)
