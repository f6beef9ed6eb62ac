import numpy as np
from typing import Tuple


def gram_schmidt_coefficients(gram: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Classical Gram-Schmidt orthogonalization from the Gram matrix of a set of vectors

    The orthogonalized vectors are u_i = sum_k C_ik J_k with C lower triangular and C_ii = 1,
    such that u_i is J_i with its components along u_0, ..., u_{i-1} removed.
    Only scalar products enter, such that the vectors J_k can be distributed over processes.

    Args:
        gram: Gram matrix G_ij = J_i . J_j

    Returns:
        C: coefficient matrix
        norm2: squared norms |u_i|^2
    """
    gram = np.asarray(gram, dtype=float)
    ndim = len(gram)
    C = np.eye(ndim)
    norm2 = np.zeros(ndim)
    for i in range(ndim):
        for k in range(i):
            if norm2[k] > 0.0:
                # J_i . u_k / |u_k|^2
                C[i] -= (C[k] @ gram[i]) / norm2[k] * C[k]
        norm2[i] = C[i] @ gram @ C[i]
        # numerically zero for linearly dependent gradients
        if norm2[i] <= 1.0e-14 * gram[i, i]:
            norm2[i] = 0.0
    return C, norm2


def inverse_gradients(
    gram: np.ndarray, orthogonalize: bool = False
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Coefficients of the inverse gradients w_i = u_i / |u_i|^2 in the basis of the CV gradients

    Args:
        gram: Gram matrix of the CV gradients
        orthogonalize: apply Gram-Schmidt orthogonalization to the gradients

    Returns:
        W: w_i = sum_k W_ik grad(xi_k), rows of vanishing gradients are zero
        C: Gram-Schmidt coefficients, identity without orthogonalization
        norm2: squared norms |u_i|^2
    """
    gram = np.asarray(gram, dtype=float)
    if orthogonalize:
        C, norm2 = gram_schmidt_coefficients(gram)
    else:
        C, norm2 = np.eye(len(gram)), np.copy(np.diag(gram))

    inv_norm2 = np.divide(1.0, norm2, out=np.zeros_like(norm2), where=(norm2 > 0.0))
    return inv_norm2[:, np.newaxis] * C, C, norm2


def cond_avg(a: np.ndarray, hist: np.ndarray, min_count: float = 0) -> np.ndarray:
    """get hist conditioned average of a, the divisor is at least `min_count`,
    elements with 0 counts are set to 0

    Args:
        a: accumulated samples, shape (*hist.shape, ndim)
        hist: number of samples
        min_count: smaller counts are replaced by `min_count` to damp noisy averages

    Returns:
        cond_avg: conditional average
    """
    a = np.asarray(a, dtype=float)
    divisor = np.maximum(np.asarray(hist, dtype=float), float(min_count))
    divisor = divisor.reshape(divisor.shape + (1,) * (a.ndim - divisor.ndim))
    divisor = np.broadcast_to(divisor, a.shape)
    return np.divide(a, divisor, out=np.zeros_like(a), where=(divisor != 0))
