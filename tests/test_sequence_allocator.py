import threading
import unittest

from inventaris.infrastructure.repositories.inventory import SequenceRepository
from tests.helpers.temp_db import TempDbSandbox


class SequenceAllocatorTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="sequence_allocator")
        self._temp_db.init_schema()
        self.db = self._temp_db.connect()
        self.sequences = SequenceRepository()

    def tearDown(self) -> None:
        self.db.close()
        self._temp_db.cleanup()

    def _next(self, dept_code: str, year: int) -> int:
        with self.db.transaction():
            return self.sequences.next_sequence(self.db, dept_code, year)

    def test_first_value_is_one_then_increments(self) -> None:
        self.assertIsNone(self.sequences.current_value(self.db, "MLD", 2026))
        self.assertEqual(self._next("MLD", 2026), 1)
        self.assertEqual(self._next("MLD", 2026), 2)
        self.assertEqual(self.sequences.current_value(self.db, "MLD", 2026), 2)

    def test_counters_are_independent_per_department_and_year(self) -> None:
        self._next("MLD", 2026)
        self._next("MLD", 2026)
        self.assertEqual(self._next("PLA", 2026), 1)
        self.assertEqual(self._next("MLD", 2027), 1)
        self.assertEqual(self._next("MLD", 2026), 3)

    def test_rolled_back_allocation_is_not_kept(self) -> None:
        self._next("QC", 2026)
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                self.sequences.next_sequence(self.db, "QC", 2026)
                raise RuntimeError("boom")
        self.assertEqual(self._next("QC", 2026), 2)

    def test_concurrent_allocations_have_no_duplicates_or_gaps(self) -> None:
        self._next("MLD", 2026)
        workers = 8
        per_worker = 5
        results: list[int] = []
        errors: list[BaseException] = []
        lock = threading.Lock()
        start = threading.Barrier(workers)

        def worker() -> None:
            db = self._temp_db.connect()
            try:
                start.wait()
                for _ in range(per_worker):
                    with db.transaction():
                        value = self.sequences.next_sequence(db, "MLD", 2026)
                    with lock:
                        results.append(value)
            except BaseException as exc:  # noqa: BLE001
                with lock:
                    errors.append(exc)
            finally:
                db.close()

        threads = [threading.Thread(target=worker) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        self.assertEqual(errors, [])
        self.assertEqual(sorted(results), list(range(2, 2 + workers * per_worker)))


if __name__ == "__main__":
    unittest.main()
