import numpy as np
import pytest as pytest
from adaptive_biasing.sampling_tools.utils import (
    gram_schmidt_coefficients,
    inverse_gradients,
    cond_avg,
)


def test_gram_schmidt_two_vectors():
    J = np.array([[1.0, 0.0], [1.0, 1.0]])
    C, norm2 = gram_schmidt_coefficients(J @ J.T)
    assert np.allclose(C, [[1.0, 0.0], [-1.0, 1.0]])
    assert np.allclose(norm2, [1.0, 1.0])
    u = C @ J
    assert u[0] @ u[1] == pytest.approx(0.0)


def test_gram_schmidt_three_vectors():
    J = np.array([[2.0, 0.0, 0.0, 1.0], [1.0, 1.0, 0.0, 0.0], [0.5, 0.3, 2.0, 1.0]])
    C, norm2 = gram_schmidt_coefficients(J @ J.T)
    u = C @ J
    overlap = u @ u.T
    assert np.allclose(overlap - np.diag(np.diag(overlap)), 0.0)
    assert np.allclose(np.diag(overlap), norm2)
    assert np.allclose(np.diag(C), 1.0)


def test_gram_schmidt_linearly_dependent():
    J = np.array([[1.0, 1.0], [2.0, 2.0]])
    C, norm2 = gram_schmidt_coefficients(J @ J.T)
    assert norm2[1] == 0.0
    W, _, _ = inverse_gradients(J @ J.T, orthogonalize=True)
    assert np.all(W[1] == 0.0)


def test_inverse_gradients():
    J = np.array([[2.0, 0.0], [1.0, 1.0]])

    # without orthogonalization w_i = grad_i / |grad_i|^2
    W, C, norm2 = inverse_gradients(J @ J.T)
    w = W @ J
    assert np.allclose(w[0], [0.5, 0.0])
    assert np.allclose(w[1], [0.5, 0.5])
    assert np.allclose(C, np.eye(2))

    # w_i . grad_i = 1 and w_i . grad_k = 0 for k < i
    W, C, norm2 = inverse_gradients(J @ J.T, orthogonalize=True)
    w = W @ J
    assert w[0] @ J[0] == pytest.approx(1.0)
    assert w[1] @ J[1] == pytest.approx(1.0)
    assert w[1] @ J[0] == pytest.approx(0.0)


def test_cond_avg_min_count():
    F = np.array([[4.0, 2.0], [0.0, 0.0], [30.0, 60.0]])
    N = np.array([2, 0, 30])
    avg = cond_avg(F, N, min_count=10)
    assert np.allclose(avg[0], [0.4, 0.2])
    assert np.allclose(avg[1], [0.0, 0.0])
    assert np.allclose(avg[2], [1.0, 2.0])


def test_cond_avg_no_nan():
    F = np.zeros((5, 1))
    N = np.zeros(5, dtype=np.int64)
    avg = cond_avg(F, N, min_count=0)
    assert np.all(np.isfinite(avg))
    assert np.all(avg == 0.0)
