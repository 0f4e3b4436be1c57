"""
Graph construction from layer configuration records.

A model is described as an ordered sequence of mappings, one per layer:

    [
        {"name": "data", "type": "data", "data_idx": 0, "outputs": 2},
        {"name": "labels", "type": "data", "data_idx": 1, "outputs": 1},
        {"name": "fc", "type": "fc", "inputs": ["data"], "outputs": 2},
        {"name": "probs", "type": "softmax", "inputs": ["fc"]},
        {"name": "cost", "type": "cost.logreg", "inputs": ["labels", "probs"]},
    ]

Layers are built in declaration order; every name listed under ``inputs``
must refer to an earlier layer. Edges are added in ``inputs`` order, which
fixes each layer's predecessor order.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from ..domain._errors import ConfigurationError
from ..domain._run_config import RunConfig
from ._graph import Graph
from ._layer import Layer
from .layers import layer_from_config


def graph_from_config(
    configs: Iterable[Mapping[str, Any]], run_config: Optional[RunConfig] = None
) -> Graph:
    """
    Build and wire a graph from layer configuration records.

    Parameters
    ----------
    configs : Iterable[Mapping[str, Any]]
        Layer records in declaration order.
    run_config : RunConfig, optional
        Run configuration for the new graph.

    Returns
    -------
    Graph
        The assembled graph.

    Raises
    ------
    ConfigurationError
        On unknown type tags, unknown or forward-referenced input names,
        duplicate names and invalid per-kind fields.
    """
    graph = Graph(run_config)
    for cfg in configs:
        name = cfg.get("name")
        input_names = cfg.get("inputs", [])
        if isinstance(input_names, str):
            input_names = [input_names]
        inputs: List[Layer] = []
        for input_name in input_names:
            if input_name not in graph:
                raise ConfigurationError(f"unknown input layer {input_name!r}", name)
            inputs.append(graph.layer(input_name))
        layer = layer_from_config(cfg, inputs, graph.run_config)
        graph.add_layer(layer)
        for src in inputs:
            graph.connect(src, layer)
    return graph
