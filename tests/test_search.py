import tempfile
import unittest
from pathlib import Path
from unittest import mock

from jfp import commands
from jfp.bundled import bundled_prompts
from jfp.db import PromptStore, escape_fts_phrase
from jfp.errors import SearchSyntaxError
from jfp.models import Prompt


class SearchTests(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self.temp_dir.name) / "jfp.db")
        patcher = mock.patch("jfp.db.get_db_path", return_value=self.db_path)
        self.addCleanup(patcher.stop)
        patcher.start()
        self.store = PromptStore()

    def tearDown(self):
        self.temp_dir.cleanup()

    def _seed_weighting_corpus(self):
        self.store.bulk_upsert(
            [
                Prompt(id="in-title", title="Zebra patterns", content="Describe the animal stripes in detail."),
                Prompt(id="in-content", title="Animal patterns", content="Describe the zebra stripes in detail."),
                Prompt(id="filler-1", title="Unrelated notes", content="Nothing relevant lives here at all."),
                Prompt(id="filler-2", title="Other notes", content="Still nothing relevant lives here."),
            ]
        )

    def test_title_match_outranks_content_match(self):
        self._seed_weighting_corpus()

        results = self.store.search("zebra", 10)

        self.assertEqual([p.id for p, _ in results], ["in-title", "in-content"])
        self.assertGreater(results[0][1], results[1][1])

    def test_scores_are_descending_and_limit_truncates(self):
        self.store.bulk_upsert(bundled_prompts())

        results = self.store.search("code", 3)

        self.assertEqual(len(results), 3)
        scores = [score for _, score in results]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_tags_are_searchable(self):
        self.store.bulk_upsert(bundled_prompts())

        ids = [p.id for p, _ in self.store.search("troubleshoot", 5)]

        self.assertEqual(ids, ["debug"])

    def test_invalid_query_raises_search_syntax_error(self):
        self.store.bulk_upsert(bundled_prompts())

        with self.assertRaises(SearchSyntaxError):
            self.store.search('"unbalanced', 5)

    def test_search_prompts_retries_as_phrase(self):
        self.store.bulk_upsert(bundled_prompts())

        results = commands.search_prompts(self.store, '"review', 5)

        self.assertIn("code-review", [p.id for p, _ in results])

    def test_search_prompts_validates_limit(self):
        for bad in (0, 101, "ten"):
            with self.subTest(limit=bad):
                with self.assertRaises(ValueError):
                    commands.search_prompts(self.store, "code", bad)

    def test_search_prompts_empty_query(self):
        self.store.bulk_upsert(bundled_prompts())

        self.assertEqual(commands.search_prompts(self.store, "   ", 5), [])

    def test_escape_fts_phrase_doubles_quotes(self):
        self.assertEqual(escape_fts_phrase('say "hi"'), '"say ""hi"""')

    def test_suggest_matches_any_task_word(self):
        self.store.bulk_upsert(bundled_prompts())

        ids = [p.id for p, _ in commands.suggest(self.store, "please write tests for my parser", 5, semantic=True)]

        self.assertIn("write-tests", ids)

    def test_build_match_reasons(self):
        prompt = Prompt(id="p", title="Code Review", content="Look at it", tags=["quality"])

        self.assertEqual(commands.build_match_reasons("review quality", prompt), ["title", "tags"])
        self.assertEqual(commands.build_match_reasons("", prompt), [])


if __name__ == "__main__":
    unittest.main()
