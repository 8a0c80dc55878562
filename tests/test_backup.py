import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from jfp.backup import export_jsonl, import_jsonl
from jfp.bundled import bundled_prompts
from jfp.db import PromptStore
from jfp.errors import BackupIoError, ImportParseError
from jfp.models import Prompt, PromptVariable


class BackupTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        patcher = mock.patch("jfp.db.get_db_path", return_value=str(self.root / "jfp.db"))
        self.addCleanup(patcher.stop)
        patcher.start()
        self.store = PromptStore()
        self.other = PromptStore.open_at(str(self.root / "other.db"))

    def tearDown(self):
        self.temp_dir.cleanup()

    def _seed(self):
        prompts = bundled_prompts()
        prompts.append(
            Prompt(
                id="local-1",
                title="Local",
                content="Mine {{X}}",
                tags=["one", "two"],
                variables=[PromptVariable(name="X", default="1")],
                saved_at="2024-02-02T00:00:00+00:00",
                is_local=True,
            )
        )
        self.store.bulk_upsert(prompts)
        return prompts

    def test_export_then_import_restores_every_prompt(self):
        self._seed()
        path = str(self.root / "backup.jsonl")

        exported = export_jsonl(self.store, path)
        imported = import_jsonl(self.other, path)

        self.assertEqual(exported, imported)
        original = sorted(self.store.list(), key=lambda p: p.id)
        restored = sorted(self.other.list(), key=lambda p: p.id)
        self.assertEqual([(p.id, p.content) for p in restored], [(p.id, p.content) for p in original])
        self.assertEqual(restored, original)

    def test_export_writes_meta_line_first(self):
        self._seed()
        path = self.root / "backup.jsonl"

        count = export_jsonl(self.store, str(path))

        lines = path.read_text(encoding="utf-8").splitlines()
        meta = json.loads(lines[0])["_meta"]
        self.assertEqual(meta["count"], count)
        self.assertEqual(meta["schema_version"], 2)
        self.assertIn("exported_at", meta)
        self.assertEqual(len(lines), count + 1)
        self.assertIsNotNone(self.store.get_meta("data_version"))

    def test_failed_export_leaves_no_temp_file(self):
        self._seed()
        target = self.root / "occupied"
        target.mkdir()

        with self.assertRaises(BackupIoError):
            export_jsonl(self.store, str(target))

        leftovers = [name for name in os.listdir(self.root) if name.endswith(".tmp")]
        self.assertEqual(leftovers, [])

    def test_import_skips_blank_lines_and_unknown_fields(self):
        path = self.root / "in.jsonl"
        path.write_text(
            "\n".join(
                [
                    json.dumps({"_meta": {"version": "x", "count": 2}}),
                    "",
                    json.dumps({"id": "a", "title": "A", "content": "aa", "rating": 5}),
                    "   ",
                    json.dumps({"id": "b", "title": "B", "content": "bb"}),
                ]
            ),
            encoding="utf-8",
        )

        self.assertEqual(import_jsonl(self.other, str(path)), 2)
        self.assertEqual(self.other.get("a").title, "A")
        self.assertIsNotNone(self.other.get_meta("data_version"))

    def test_import_without_meta_line(self):
        path = self.root / "in.jsonl"
        path.write_text(json.dumps({"id": "a", "title": "A", "content": "aa"}) + "\n", encoding="utf-8")

        self.assertEqual(import_jsonl(self.other, str(path)), 1)

    def test_bad_line_aborts_import_with_line_number(self):
        path = self.root / "bad.jsonl"
        path.write_text(
            "\n".join(
                [
                    json.dumps({"_meta": {"count": 2}}),
                    json.dumps({"id": "a", "title": "A", "content": "aa"}),
                    "{not json",
                ]
            ),
            encoding="utf-8",
        )

        with self.assertRaises(ImportParseError) as ctx:
            import_jsonl(self.other, str(path))

        self.assertEqual(ctx.exception.line_number, 3)
        self.assertIn("line 3", str(ctx.exception))
        self.assertEqual(self.other.count(), 0)

    def test_record_missing_content_is_rejected(self):
        path = self.root / "bad.jsonl"
        path.write_text(json.dumps({"id": "a", "title": "A"}) + "\n", encoding="utf-8")

        with self.assertRaises(ImportParseError) as ctx:
            import_jsonl(self.other, str(path))

        self.assertEqual(ctx.exception.line_number, 1)

    def test_duplicate_variable_names_report_their_line(self):
        path = self.root / "dup.jsonl"
        good = {"id": "a", "title": "A", "content": "x"}
        dup = {"id": "b", "title": "B", "content": "{{V}}", "variables": [{"name": "V"}, {"name": "V"}]}
        path.write_text(json.dumps(good) + "\n" + json.dumps(dup) + "\n", encoding="utf-8")

        with self.assertRaises(ImportParseError) as ctx:
            import_jsonl(self.other, str(path))

        self.assertEqual(ctx.exception.line_number, 2)
        self.assertIn("V", str(ctx.exception))
        self.assertEqual(self.other.count(), 0)

    def test_missing_file_raises_backup_io_error(self):
        with self.assertRaises(BackupIoError):
            import_jsonl(self.other, str(self.root / "nope.jsonl"))


if __name__ == "__main__":
    unittest.main()
