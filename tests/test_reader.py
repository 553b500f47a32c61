import unittest

from babynames_pipeline.models import SourceCursor
from babynames_pipeline.reader import PaginatedReader

from tests.fakes import InMemoryStore, make_records


def store_with(n):
    store = InMemoryStore()
    store.bulk_insert(make_records(n))
    return store


class TestPaginatedReader(unittest.TestCase):
    def test_pages_until_source_exhausted(self):
        store = store_with(12)
        reader = PaginatedReader(store, SourceCursor(page_size=5, cap=1000))
        pages = list(reader)

        self.assertEqual([len(p) for p in pages], [5, 5, 2])
        self.assertEqual(store.queries, [(5, 0), (5, 5), (5, 10), (5, 15)])
        self.assertTrue(reader.exhausted)
        self.assertEqual(reader.cursor.total_delivered, 12)

    def test_cap_shrinks_limit_not_offset_step(self):
        store = store_with(20)
        reader = PaginatedReader(store, SourceCursor(page_size=8, cap=11))
        pages = list(reader)

        self.assertEqual([len(p) for p in pages], [8, 3])
        self.assertEqual(store.queries, [(8, 0), (3, 8)])
        self.assertEqual(reader.cursor.offset, 16)
        self.assertEqual(reader.cursor.total_delivered, 11)

    def test_preserves_insertion_order(self):
        store = store_with(6)
        names = [r.name for page in PaginatedReader(store, SourceCursor(page_size=4, cap=100)) for r in page]
        self.assertEqual(names, [f"Name{i}" for i in range(6)])

    def test_cursor_validation(self):
        with self.assertRaises(ValueError):
            SourceCursor(page_size=0, cap=1)
        with self.assertRaises(ValueError):
            SourceCursor(page_size=1, cap=0)


if __name__ == "__main__":
    unittest.main()
