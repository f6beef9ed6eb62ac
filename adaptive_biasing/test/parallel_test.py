import numpy as np
import pytest as pytest
from concurrent.futures import ThreadPoolExecutor
from adaptive_biasing.parallel import SerialCommunicator, LocalGroup
from adaptive_biasing.errors import SynchronizationError


def run_walkers(group, func):
    with ThreadPoolExecutor(max_workers=group.size) as pool:
        futures = [pool.submit(func, group[rank]) for rank in range(group.size)]
        return [f.result() for f in futures]


def test_serial():
    comm = SerialCommunicator()
    a = np.arange(4.0)
    b = comm.allreduce_sum(a)
    assert comm.rank == 0 and comm.size == 1
    assert np.all(a == b)
    assert b is not a


def test_local_group_sum():
    group = LocalGroup(4, timeout=10.0)

    def walker(comm):
        data = np.full(3, 0.1 * (comm.rank + 1))
        first = comm.allreduce_sum(data)
        second = comm.allreduce_sum(np.ones(2, dtype=np.int64))
        return first, second

    results = run_walkers(group, walker)
    for first, second in results:
        assert first == pytest.approx(np.full(3, 1.0))
        assert np.array_equal(first, results[0][0])
        assert np.all(second == 4)
        assert second.dtype == np.int64


def test_local_group_many_rounds():
    group = LocalGroup(3, timeout=10.0)

    def walker(comm):
        total = np.zeros(1)
        for i in range(50):
            total = comm.allreduce_sum(total + comm.rank)
        return total

    results = run_walkers(group, walker)
    assert all(np.array_equal(r, results[0]) for r in results)


def test_local_group_timeout():
    group = LocalGroup(2, timeout=0.2)
    with pytest.raises(SynchronizationError):
        group[0].allreduce_sum(np.ones(2))


def test_local_group_shape_mismatch():
    group = LocalGroup(2, timeout=10.0)

    def walker(comm):
        try:
            comm.allreduce_sum(np.ones(2 + comm.rank))
        except SynchronizationError:
            return True
        return False

    assert run_walkers(group, walker) == [True, True]
