"""
Tensor Utilities

This module implements the small set of vector and matrix operations shared by the
relaxation and learning-rule engines. All vectors are 1-D float64 tensors and every
function returns a new tensor.
"""

import torch

DTYPE = torch.float64


def as_vector(values):
    """
    Convert a sequence of numbers (or a tensor) into a 1-D float64 tensor

    Args:
        values (sequence or torch.Tensor): Vector entries

    Returns:
        torch.Tensor: A fresh 1-D tensor
    """
    if isinstance(values, torch.Tensor):
        return values.detach().to(DTYPE).reshape(-1).clone()
    return torch.tensor(list(values), dtype=DTYPE)


def saturate(x):
    """Saturating nonlinearity, bounds outputs to (-1, 1)."""
    return torch.tanh(x)


def sigmoid(x):
    return torch.sigmoid(torch.as_tensor(x, dtype=DTYPE))


def project(x, weight):
    """
    Bottom-up projection through a transition

    Args:
        x (torch.Tensor): Upstream vector of size n
        weight (torch.Tensor): Weight matrix of shape (m, n)

    Returns:
        torch.Tensor: saturate(weight @ x), a vector of size m
    """
    return saturate(weight @ x)


def predict_down(upper, weight):
    """
    Top-down prediction of the lower layer of a transition

    Args:
        upper (torch.Tensor): Downstream (upper) vector of size m
        weight (torch.Tensor): Weight matrix of shape (m, n)

    Returns:
        torch.Tensor: saturate(weight.T @ upper), a vector of size n
    """
    return saturate(weight.t() @ upper)


def goodness(y):
    """Sum of squared activations."""
    return float(torch.sum(y ** 2))


def subtract(a, b):
    """
    Elementwise a - b

    Missing entries of b (b is None or shorter than a) count as zero.

    Args:
        a (torch.Tensor): Minuend
        b (torch.Tensor, optional): Subtrahend

    Returns:
        torch.Tensor: Difference with the shape of a
    """
    if b is None:
        return a.clone()
    n = min(a.shape[0], b.shape[0])
    out = a.clone()
    out[:n] = out[:n] - b[:n]
    return out


def outer(a, b):
    return torch.outer(a, b)


def safe_mean(x):
    """Mean of a vector, 0.0 for an empty one."""
    if x.numel() == 0:
        return 0.0
    return float(torch.mean(x))
