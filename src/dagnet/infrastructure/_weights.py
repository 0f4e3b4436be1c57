"""
Weight groups owned by weight-bearing layers.

A `WeightGroup` bundles everything one named set of weights needs across a
training step:

- ``value``: the weights themselves
- ``increment``: the momentum buffer (last applied step)
- ``grad``: the gradient accumulator filled by the owning layer's backward
- ``lr``, ``weight_decay``, ``momentum``: per-group hyperparameters

Sign convention
---------------
``grad`` holds the *descent direction*, i.e. the negated derivative of the
cost with respect to ``value``. `update` therefore adds the increment:

    increment = momentum * increment + lr * (grad / batch_size - weight_decay * value)
    value     = value + increment

Host/device copies
------------------
``value`` and ``increment`` live in compute-backend memory. `copy_to_host`
snapshots them into host-resident arrays; `copy_to_device` writes the host
arrays back. Both complete before returning. The gradient checker perturbs
the host copies and pushes them back to the device between cost
evaluations.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ..domain._errors import ProtocolError, ShapeMismatchError
from ..domain._pass_type import PassType


class WeightGroup:
    """
    One named group of trainable weights plus its optimizer state.

    Parameters
    ----------
    name : str
        Group name, unique within the owning layer (e.g. ``"weights0"``).
    value : np.ndarray
        Initial weights (2-D).
    lr : float
        Learning rate.
    momentum : float, optional
        Momentum coefficient. Defaults to 0.
    weight_decay : float, optional
        L2 weight-decay coefficient. Defaults to 0.
    dtype : str or np.dtype, optional
        Storage dtype. Defaults to float64.

    Raises
    ------
    ShapeMismatchError
        If ``value`` is not 2-D.
    ValueError
        If a hyperparameter is negative.
    """

    def __init__(
        self,
        name: str,
        value: np.ndarray,
        lr: float,
        momentum: float = 0.0,
        weight_decay: float = 0.0,
        dtype: str | np.dtype = "float64",
    ) -> None:
        v = np.array(value, dtype=dtype, copy=True)
        if v.ndim != 2:
            raise ShapeMismatchError(
                f"weight group '{name}' must be 2-D, got shape {v.shape}"
            )
        if lr < 0.0 or momentum < 0.0 or weight_decay < 0.0:
            raise ValueError(
                f"weight group '{name}': hyperparameters must be >= 0, got "
                f"lr={lr}, momentum={momentum}, weight_decay={weight_decay}"
            )
        self.name = name
        self.value: np.ndarray = v
        self.increment: np.ndarray = np.zeros_like(v)
        self.grad: np.ndarray = np.zeros_like(v)
        self.lr = float(lr)
        self.momentum = float(momentum)
        self.weight_decay = float(weight_decay)
        self.host_value: Optional[np.ndarray] = None
        self.host_increment: Optional[np.ndarray] = None

    def __repr__(self) -> str:
        return (
            f"WeightGroup(name={self.name!r}, shape={self.value.shape}, "
            f"lr={self.lr}, momentum={self.momentum}, "
            f"weight_decay={self.weight_decay})"
        )

    @property
    def shape(self) -> tuple[int, ...]:
        return self.value.shape

    def set_grad(self, grad: np.ndarray) -> None:
        """
        Overwrite the gradient accumulator.

        Parameters
        ----------
        grad : np.ndarray
            Descent direction for this pass; must match ``value``'s shape.

        Raises
        ------
        ShapeMismatchError
            If the shapes differ.
        """
        if grad.shape != self.value.shape:
            raise ShapeMismatchError(
                f"gradient for '{self.name}' has shape {grad.shape}, "
                f"weights have shape {self.value.shape}"
            )
        self.grad = np.asarray(grad, dtype=self.value.dtype)

    def update(self, batch_size: int, pass_type: PassType = PassType.TRAIN) -> None:
        """
        Apply one momentum/weight-decay step.

        Parameters
        ----------
        batch_size : int
            Number of cases the gradient was summed over.
        pass_type : PassType, optional
            Pass the gradient came from. The momentum term is dropped for
            gradient-verification passes.

        Raises
        ------
        ValueError
            If ``batch_size`` is not positive.
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be > 0, got {batch_size}")
        momentum = 0.0 if pass_type.is_gradient_check else self.momentum
        step = self.lr * (self.grad / float(batch_size) - self.weight_decay * self.value)
        self.increment = momentum * self.increment + step
        self.value = self.value + self.increment

    def copy_to_host(self) -> None:
        """
        Snapshot ``value`` and ``increment`` into host memory.
        """
        self.host_value = np.array(self.value, copy=True)
        self.host_increment = np.array(self.increment, copy=True)

    def copy_to_device(self) -> None:
        """
        Write the host copies back into backend memory.

        Raises
        ------
        ProtocolError
            If no host copy has been taken yet.
        ShapeMismatchError
            If a host copy was replaced with an array of a different shape.
        """
        if self.host_value is None or self.host_increment is None:
            raise ProtocolError(
                f"weight group '{self.name}' has no host copy; call copy_to_host first"
            )
        for host in (self.host_value, self.host_increment):
            if host.shape != self.value.shape:
                raise ShapeMismatchError(
                    f"host copy of '{self.name}' has shape {host.shape}, "
                    f"expected {self.value.shape}"
                )
        self.value = np.array(self.host_value, dtype=self.value.dtype, copy=True)
        self.increment = np.array(self.host_increment, dtype=self.value.dtype, copy=True)
