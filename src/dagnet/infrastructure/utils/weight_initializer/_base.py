"""
Weight initializer registry and dispatch utilities.

This module defines `WeightInitializer`, which applies registered
initialization strategies to freshly allocated weight matrices when a layer
configuration does not supply explicit values.

Design
------
- Initializers are registered by string name via a decorator-based registry.
- Each initializer is a callable ``(shape, *, scale, dtype) -> np.ndarray``.
- The dispatcher resolves an initializer by name at construction time and
  invokes it via `__call__`.

Usage example
-------------
Registering an initializer:

    @WeightInitializer.register_initializer("gaussian")
    def gaussian(shape, *, scale, dtype): ...

Applying an initializer:

    init = WeightInitializer("gaussian")
    w = init((784, 10), scale=0.01)
"""

from __future__ import annotations

from typing import Any, Callable, ClassVar, Dict, Tuple, TypeVar

import numpy as np

from ....domain._errors import ConfigurationError

T = TypeVar("T", bound=Callable[..., np.ndarray])


class WeightInitializer:
    """
    Registry-backed weight initializer dispatcher.

    Raises
    ------
    ConfigurationError
        If the requested initializer name is not registered.
    """

    INITIALIZERS: ClassVar[Dict[str, Callable[..., np.ndarray]]] = {}

    def __init__(self, initializer_name: str) -> None:
        try:
            self._initializer: Callable[..., np.ndarray] = self.INITIALIZERS[
                initializer_name
            ]
        except KeyError as e:
            available = ", ".join(sorted(self.INITIALIZERS)) or "<none>"
            raise ConfigurationError(
                f"unsupported initializer name: {initializer_name!r}. "
                f"Available: {available}"
            ) from e
        self.name = initializer_name

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[T], T]:
        """
        Decorator to register a weight initializer under `name`.

        Parameters
        ----------
        name:
            Registry key used to retrieve the initializer later.
        overwrite:
            If False (default), raises if `name` is already registered.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Initializer name must be a non-empty string")

        def decorator(func: T) -> T:
            if not overwrite and name in cls.INITIALIZERS:
                raise ValueError(f"Initializer already registered: {name!r}")
            cls.INITIALIZERS[name] = func
            return func

        return decorator

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return registered initializer names (sorted)."""
        return tuple(sorted(cls.INITIALIZERS))

    def __call__(
        self,
        shape: Tuple[int, int],
        *,
        scale: float = 0.01,
        dtype: str | np.dtype = "float64",
        **kwargs: Any,
    ) -> np.ndarray:
        return self._initializer(shape, scale=scale, dtype=dtype, **kwargs)
