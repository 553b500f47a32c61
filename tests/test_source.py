import tempfile
import unittest
import zipfile
from pathlib import Path

from babynames_pipeline.exceptions import SourceReadError
from babynames_pipeline.source import extract_csv, find_dataset_file, iter_csv_rows, resolve_csv_path

CSV_TEXT = "YearOfBirth,Name,Sex,Number\n1880,Mary,F,7065\n1880,John,M,9655\n"


class TestSource(unittest.TestCase):
    def test_iter_csv_rows_is_lazy_mapping(self):
        with tempfile.TemporaryDirectory() as td:
            p = Path(td) / "names.csv"
            p.write_text(CSV_TEXT, encoding="utf-8")

            it = iter_csv_rows(p)
            first = next(it)
            self.assertEqual(first["Name"], "Mary")
            self.assertEqual(first["Sex"], "F")
            self.assertEqual([r["Name"] for r in it], ["John"])

    def test_missing_file_raises_source_read_error(self):
        with self.assertRaises(SourceReadError):
            next(iter_csv_rows("/nonexistent/names.csv"))

    def test_zip_preferred_and_extracted(self):
        with tempfile.TemporaryDirectory() as td:
            d = Path(td)
            (d / "other.csv").write_text("Name,Sex\nX,M\n", encoding="utf-8")
            with zipfile.ZipFile(d / "dataset.zip", "w") as zf:
                zf.writestr("nested/babyNames.csv", CSV_TEXT)

            self.assertEqual(find_dataset_file(d).name, "dataset.zip")

            csv_path = resolve_csv_path(d)
            self.assertEqual(csv_path, d / "babyNames.csv")
            self.assertEqual([r["Name"] for r in iter_csv_rows(csv_path)], ["Mary", "John"])

    def test_zip_without_csv(self):
        with tempfile.TemporaryDirectory() as td:
            z = Path(td) / "dataset.zip"
            with zipfile.ZipFile(z, "w") as zf:
                zf.writestr("readme.txt", "nothing here")
            with self.assertRaises(SourceReadError):
                extract_csv(z)

    def test_empty_download_dir(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(SourceReadError):
                find_dataset_file(td)


if __name__ == "__main__":
    unittest.main()
