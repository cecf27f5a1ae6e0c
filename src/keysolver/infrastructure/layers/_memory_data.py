"""
In-memory data source layer.

`MemoryData` serves mini-batches from arrays held in memory. The arrays come
from an ``.npz`` archive (``source``), from inline nested lists
(``arrays``), or are handed in programmatically with `reset`. There is one
array per top, keyed by top name, all with the same number of rows.

Batches are taken in order and wrap around the end of the data, so any
number of forward passes is valid; the read position persists across
passes. The layer produces no gradients.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence

import numpy as np

from ._layer import Layer, register_layer
from ..blob._blob import Blob
from ...domain._phase import Phase


@register_layer("MemoryData")
class MemoryData(Layer):
    """
    Options (``memory_data_param``)
    -------------------------------
    batch_size : int
        Rows per forward pass (required, > 0).
    source : str, optional
        Path of an ``.npz`` archive with one array per top name.
    arrays : mapping, optional
        Inline arrays keyed by top name.
    """

    PARAM_KEY = "memory_data_param"
    EXACT_BOTTOMS = 0
    MAX_TOPS = None

    def layer_setup(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        unknown = set(self.options) - {"batch_size", "source", "arrays"}
        if unknown:
            raise self._config_error(f"unknown options {sorted(unknown)}")
        self.batch_size = int(self.options.get("batch_size", 0))
        if self.batch_size <= 0:
            raise self._config_error("batch_size must be > 0")

        self.top_names = [str(t) for t in self.layer_param.get("top", [])]
        source = self.options.get("source")
        inline = self.options.get("arrays")
        if (source is None) == (inline is None):
            raise self._config_error("exactly one of 'source' or 'arrays' must be set")

        if source is not None:
            path = Path(source)
            if not path.is_absolute():
                path = Path(self.context.base_dir) / path
            try:
                with np.load(path) as archive:
                    arrays = {k: archive[k] for k in archive.files}
            except OSError as e:
                raise self._config_error(f"cannot read data source {path}: {e}") from e
        else:
            arrays = dict(inline)
        self.reset(arrays)

    def reset(self, arrays: Mapping[str, object]) -> None:
        """Replace the served arrays and rewind to the first row."""
        missing = [n for n in self.top_names if n not in arrays]
        if missing:
            raise self._config_error(f"no data for tops {missing}")
        data = [np.asarray(arrays[n], dtype=self.context.blob_kwargs.get("dtype", np.float32)) for n in self.top_names]
        rows = {a.shape[0] if a.ndim else 0 for a in data}
        if len(rows) != 1 or 0 in rows:
            raise self._config_error("all data arrays must be non-empty with the same number of rows")
        self._data = data
        self._rows = rows.pop()
        self._pos = 0

    def reshape(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        for top, arr in zip(tops, self._data):
            top.reshape((self.batch_size,) + arr.shape[1:])

    def _forward(self, bottoms: Sequence[Blob], tops: Sequence[Blob], phase: Phase) -> None:
        idx = (self._pos + np.arange(self.batch_size)) % self._rows
        for top, arr in zip(tops, self._data):
            top.mutable_cpu_data()[...] = arr[idx]
        self._pos = (self._pos + self.batch_size) % self._rows
