import threading

import pytest

from appsync_deployer.core.concurrency import run_all


def test_results_keep_input_order():
    assert run_all(lambda x: x * 2, [3, 1, 2], max_workers=3) == [6, 2, 4]
    assert run_all(lambda x: x, [], max_workers=3) == []


def test_first_failure_in_input_order_after_all_finished():
    finished = []
    lock = threading.Lock()

    def work(i):
        if i in (1, 3):
            raise RuntimeError(f"item {i}")
        with lock:
            finished.append(i)
        return i

    with pytest.raises(RuntimeError, match="item 1"):
        run_all(work, [0, 1, 2, 3, 4], max_workers=4)
    assert sorted(finished) == [0, 2, 4]


def test_single_worker_runs_inline():
    thread_names = run_all(lambda _: threading.current_thread().name, ["a", "b"], max_workers=1)
    assert thread_names == [threading.current_thread().name] * 2
