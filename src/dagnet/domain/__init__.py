"""
Domain layer of dagnet: numpy-free contracts, enums and errors.
"""

from ._errors import (
    ConfigurationError,
    GraphCycleError,
    NoDataSuppliedError,
    ProtocolError,
    ShapeMismatchError,
    UnknownActivationError,
    UnknownCostTypeError,
    UnknownLayerTypeError,
    UnknownPoolingTypeError,
)
from ._layer_kind import LayerKind
from ._layer_ops import ILayerOps
from ._pass_type import PassType
from ._run_config import RunConfig

__all__ = [
    ConfigurationError.__name__,
    GraphCycleError.__name__,
    NoDataSuppliedError.__name__,
    ProtocolError.__name__,
    ShapeMismatchError.__name__,
    UnknownActivationError.__name__,
    UnknownCostTypeError.__name__,
    UnknownLayerTypeError.__name__,
    UnknownPoolingTypeError.__name__,
    LayerKind.__name__,
    ILayerOps.__name__,
    PassType.__name__,
    RunConfig.__name__,
]
