"""
CPU reference implementations of the cost kernels (NumPy backend).

These functions mirror the CUDA kernels work-group by work-group so they can
serve as the numerical ground truth in tests and as the CPU execution path:

- the flat index space `[0, vector_size * batch_size)` is split into groups
  of `group_size` work-items (1024 by default, the last group partial);
- each work-item computes one elementwise term;
- terms are accumulated into `cost[batch_id]` with `np.add.at`, the
  unbuffered scatter-add that plays the role of the kernel's atomic add.

Layout
------
Inputs are flat, row-major with the batch index varying slowest:
`p = batch_id * vector_size + within_vector_id`.

Preconditions
-------------
`sigmoid_cross_entropy_cpu` expects every input in the open interval (0, 1);
values outside it produce inf/nan and are not checked.
"""

from __future__ import annotations

import numpy as np

DEFAULT_GROUP_SIZE = 1024


def _flat(name: str, arr: np.ndarray, n: int) -> np.ndarray:
    if not isinstance(arr, np.ndarray):
        raise TypeError(f"{name} must be a numpy.ndarray, got {type(arr)!r}")
    if arr.size < n:
        raise ValueError(f"{name} holds {arr.size} elements, expected at least {n}")
    return arr.reshape(-1)[:n]


def _writable_flat(name: str, arr: np.ndarray, n: int) -> np.ndarray:
    if isinstance(arr, np.ndarray) and not arr.flags["C_CONTIGUOUS"]:
        raise ValueError(f"{name} must be C-contiguous")
    return _flat(name, arr, n)


def _groups(size: int, group_size: int):
    if group_size <= 0:
        raise ValueError(f"group_size must be positive, got {group_size}")
    for start in range(0, size, group_size):
        yield start, min(start + group_size, size)


def sigmoid_cross_entropy_cpu(
    input: np.ndarray,
    label: np.ndarray,
    cost: np.ndarray,
    label_vector_size: int,
    batch_size: int,
    *,
    group_size: int = DEFAULT_GROUP_SIZE,
) -> None:
    """
    Per-sample binary cross-entropy, accumulated in place into `cost`.

    Parameters
    ----------
    input : np.ndarray
        Predictions in (0, 1), `label_vector_size * batch_size` elements.
    label : np.ndarray
        Targets, same length as `input`.
    cost : np.ndarray
        Output, `batch_size` elements. Zeroed before accumulation.
    label_vector_size, batch_size : int
        Flat layout of `input`/`label`.
    group_size : int, optional
        Work-items per group. Defaults to 1024.

    Notes
    -----
    term(p) = -label[p] * log(input[p]) - (1 - label[p]) * log(1 - input[p])
    cost[b] = sum of term(p) over p with p // label_vector_size == b
    """
    size = int(label_vector_size) * int(batch_size)
    x = _flat("input", input, size)
    y = _flat("label", label, size)
    out = _writable_flat("cost", cost, int(batch_size))

    out[:] = 0
    for start, stop in _groups(size, group_size):
        batch_id = np.arange(start, stop) // int(label_vector_size)
        xs = x[start:stop]
        ys = y[start:stop]
        term = -ys * np.log(xs) - (1 - ys) * np.log(1 - xs)
        np.add.at(out, batch_id, term.astype(out.dtype, copy=False))


def sigmoid_cross_entropy_derivative_cpu(
    input: np.ndarray,
    label: np.ndarray,
    input_grad: np.ndarray,
    label_vector_size: int,
    batch_size: int,
    *,
    group_size: int = DEFAULT_GROUP_SIZE,
) -> None:
    """
    Gradient of the sigmoid cross-entropy cost w.r.t. the pre-sigmoid input.

    input_grad[p] = input[p] - label[p]
    """
    size = int(label_vector_size) * int(batch_size)
    x = _flat("input", input, size)
    y = _flat("label", label, size)
    g = _writable_flat("input_grad", input_grad, size)

    for start, stop in _groups(size, group_size):
        g[start:stop] = x[start:stop] - y[start:stop]


def _check_labels(label: np.ndarray, vector_size: int) -> np.ndarray:
    idx = label.astype(np.int64, copy=False)
    if idx.size and (idx.min() < 0 or idx.max() >= vector_size):
        raise ValueError(
            f"labels must lie in [0, {vector_size}), got range "
            f"[{int(idx.min())}, {int(idx.max())}]"
        )
    return idx


def softmax_log_loss_cpu(
    output: np.ndarray,
    label: np.ndarray,
    cost: np.ndarray,
    vector_size: int,
    batch_size: int,
    *,
    group_size: int = DEFAULT_GROUP_SIZE,
) -> None:
    """
    Per-sample multi-class log loss from softmax outputs and class indices.

    Parameters
    ----------
    output : np.ndarray
        Softmax probabilities, `vector_size * batch_size` elements.
    label : np.ndarray
        Integer class index per sample, `batch_size` elements.
    cost : np.ndarray
        Output, `batch_size` elements. Zeroed before accumulation.

    Notes
    -----
    Only the work-item whose within-vector index equals the sample's label
    contributes: cost[b] = -log(output[b * vector_size + label[b]]).

    Raises
    ------
    ValueError
        If a label is outside `[0, vector_size)`.
    """
    vector_size = int(vector_size)
    size = vector_size * int(batch_size)
    o = _flat("output", output, size)
    idx = _check_labels(_flat("label", label, int(batch_size)), vector_size)
    out = _writable_flat("cost", cost, int(batch_size))

    out[:] = 0
    for start, stop in _groups(size, group_size):
        p = np.arange(start, stop)
        batch_id = p // vector_size
        hit = (p % vector_size) == idx[batch_id]
        term = -np.log(o[start:stop][hit])
        np.add.at(out, batch_id[hit], term.astype(out.dtype, copy=False))


def softmax_log_loss_derivative_cpu(
    output: np.ndarray,
    label: np.ndarray,
    input_grad: np.ndarray,
    vector_size: int,
    batch_size: int,
    *,
    group_size: int = DEFAULT_GROUP_SIZE,
) -> None:
    """
    Gradient of the softmax log loss w.r.t. the softmax input.

    input_grad[p] = output[p] - (1 if p % vector_size == label[p // vector_size] else 0)
    """
    vector_size = int(vector_size)
    size = vector_size * int(batch_size)
    o = _flat("output", output, size)
    idx = _check_labels(_flat("label", label, int(batch_size)), vector_size)
    g = _writable_flat("input_grad", input_grad, size)

    for start, stop in _groups(size, group_size):
        p = np.arange(start, stop)
        onehot = (p % vector_size) == idx[p // vector_size]
        g[start:stop] = o[start:stop] - onehot
