"""Tests for wallet/locks.py."""

import threading
import time

import pytest

from wallet.locks import KeyedLock


class TestKeyedLock:
    def test_serializes_same_key(self) -> None:
        locks = KeyedLock()
        events: list[str] = []
        first_inside = threading.Event()

        def first() -> None:
            with locks.hold(("pass.a", "1")):
                first_inside.set()
                time.sleep(0.05)
                events.append("first-done")

        def second() -> None:
            first_inside.wait()
            with locks.hold(("pass.a", "1")):
                events.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert events == ["first-done", "second"]

    def test_different_keys_do_not_block(self) -> None:
        locks = KeyedLock()
        acquired = threading.Event()

        with locks.hold(("pass.a", "1")):

            def other() -> None:
                with locks.hold(("pass.a", "2")):
                    acquired.set()

            thread = threading.Thread(target=other)
            thread.start()
            assert acquired.wait(timeout=1)
            thread.join()

    def test_releases_entries(self) -> None:
        locks = KeyedLock()

        with locks.hold("a"):
            assert len(locks) == 1

        assert len(locks) == 0

    def test_releases_on_exception(self) -> None:
        locks = KeyedLock()

        with pytest.raises(ValueError):
            with locks.hold("a"):
                raise ValueError("boom")

        assert len(locks) == 0
        with locks.hold("a"):
            pass
