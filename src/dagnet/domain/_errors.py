"""
Error taxonomy for the layer-graph engine.

This module defines the exceptions raised by graph assembly, layer
construction and pass execution. They fall into three groups:

- configuration errors: unknown type tags, unknown pooling kinds, unknown
  activation names, malformed records and cyclic edges. These are fatal at
  construction time.
- protocol violations: driving a source layer without supplying data.
- shape mismatches: an input list whose length differs from the number of
  predecessors, or weight buffers of the wrong shape.

Calling backward on a layer whose backward fan-in is not yet satisfied is
not an error; it is a silent no-op.
"""


class ConfigurationError(ValueError):
    """
    Raised when a layer or graph description cannot be turned into a layer.

    Attributes
    ----------
    layer : str or None
        Name of the offending layer, if known.
    """

    def __init__(self, message: str, layer: str | None = None) -> None:
        prefix = f"layer '{layer}': " if layer is not None else ""
        super().__init__(prefix + message)
        self.layer = layer


class UnknownLayerTypeError(ConfigurationError):
    """
    Raised when a layer record carries a type tag with no registered builder.
    """

    def __init__(self, type_tag: str, layer: str | None = None) -> None:
        super().__init__(f"unknown layer type '{type_tag}'", layer)
        self.type_tag = type_tag


class UnknownCostTypeError(UnknownLayerTypeError):
    """
    Raised by the cost factory for an unrecognised ``cost.*`` tag.
    """


class UnknownPoolingTypeError(ConfigurationError):
    """
    Raised when a pooling layer names a pooling kind other than max or avg.
    """

    def __init__(self, pool: str, layer: str | None = None) -> None:
        super().__init__(f"unknown pooling type '{pool}'", layer)
        self.pool = pool


class UnknownActivationError(ConfigurationError):
    """
    Raised when a layer names an activation function that is not registered.
    """

    def __init__(self, activation: str, layer: str | None = None) -> None:
        super().__init__(f"unknown activation function '{activation}'", layer)
        self.activation = activation


class GraphCycleError(ConfigurationError):
    """
    Raised when adding an edge would make a layer its own ancestor.
    """

    def __init__(self, src: str, dst: str) -> None:
        super().__init__(f"edge '{src}' -> '{dst}' would create a cycle")
        self.src = src
        self.dst = dst


class ProtocolError(RuntimeError):
    """
    Raised when the driver calls into the graph in an order the forward or
    backward protocol does not allow.
    """


class NoDataSuppliedError(ProtocolError, ConfigurationError):
    """
    Raised when a source layer is asked to run forward without an explicit
    input list.

    Notes
    -----
    Sources have no predecessors, so there is nothing to gather; the driver
    must call the input-supplying entry point instead.
    """

    def __init__(self, layer: str) -> None:
        ConfigurationError.__init__(self, "no data supplied", layer)


class ShapeMismatchError(ValueError):
    """
    Raised when a supplied buffer or input list does not have the shape the
    receiving layer expects.
    """
