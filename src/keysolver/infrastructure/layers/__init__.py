"""
Layer public API.

Importing this package registers the built-in layers (``MemoryData``,
``InnerProduct``, ``ReLU``, ``Sigmoid``, ``Dropout``, ``EuclideanLoss``,
``SoftmaxWithLoss``, ``Accuracy``) via import side effects.
"""

from ._memory_data import *
from ._inner_product import *
from ._neuron import *
from ._loss import *
from ._layer import Layer, LayerContext, layer_class, register_layer

__all__ = [
    Layer.__name__,
    LayerContext.__name__,
    layer_class.__name__,
    register_layer.__name__,
]
