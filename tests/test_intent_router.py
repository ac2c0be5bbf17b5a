"""
Unit tests for brand_orc/intent_router.py
"""

import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brand_orc.enums import Operation
from brand_orc.intent_router import IntentRouter, postprocess
from fakes import FakeLLM


class TestPostprocess(unittest.TestCase):
    def test_vague_term_uses_last_project(self):
        intent = postprocess(Operation.FIND_BRANDS, {"search_term": "more brands"}, "more brands please", "Fast 11")
        self.assertEqual(intent.args, {"search_term": "Fast 11"})

    def test_vague_phrase_inside_a_longer_term(self):
        for term in ("more brands for this project", "Other brands for this film please"):
            intent = postprocess(Operation.FIND_BRANDS, {"search_term": term}, "more please", "Fast 11")
            self.assertEqual(intent.args, {"search_term": "Fast 11"})

    def test_title_containing_a_vague_word_is_kept(self):
        intent = postprocess(Operation.FIND_BRANDS, {"search_term": "Kitchen Nightmares"}, "x", "Fast 11")
        self.assertEqual(intent.args, {"search_term": "Kitchen Nightmares"})

    def test_empty_term_without_project_uses_message(self):
        intent = postprocess(Operation.QUICK_MATCH, {}, "quick brands for a heist film", None)
        self.assertEqual(intent.operation, Operation.QUICK_MATCH)
        self.assertEqual(intent.args, {"search_term": "quick brands for a heist film"})

    def test_specific_term_is_kept(self):
        intent = postprocess(Operation.FIND_BRANDS, {"search_term": "Heist Night"}, "x", "Fast 11")
        self.assertEqual(intent.args, {"search_term": "Heist Night"})

    def test_brand_name_aliases(self):
        for key in ("search_query", "query", "brand"):
            intent = postprocess(Operation.GET_BRAND_ACTIVITY, {key: " SafeGuard "}, "x", None)
            self.assertEqual(intent.args, {"brand_name": "SafeGuard"})

    def test_missing_brand_name_answers_generally(self):
        intent = postprocess(Operation.GET_BRAND_ACTIVITY, {}, "x", None)
        self.assertEqual(intent.operation, Operation.ANSWER_GENERAL)

    def test_brand_names_string_becomes_list(self):
        intent = postprocess(
            Operation.CREATE_PITCHES_FOR_BRANDS, {"brand_names": "SafeGuard, CrunchCo and Vroom"}, "x", None
        )
        self.assertEqual(intent.args, {"brand_names": ["SafeGuard", "CrunchCo", "Vroom"]})


class TestIntentRouter(unittest.IsolatedAsyncioTestCase):
    async def test_routes_tool_call(self):
        router = IntentRouter(FakeLLM(tool=("get_brand_activity", {"query": "SafeGuard"})))
        intent = await router.route("what's new with SafeGuard?")
        self.assertEqual(intent.operation, Operation.GET_BRAND_ACTIVITY)
        self.assertEqual(intent.args, {"brand_name": "SafeGuard"})

    async def test_unavailable_llm_answers_generally(self):
        intent = await IntentRouter(FakeLLM(available=False)).route("find brands")
        self.assertEqual(intent.operation, Operation.ANSWER_GENERAL)

    async def test_no_tool_call_answers_generally(self):
        intent = await IntentRouter(FakeLLM(tool=None)).route("hi")
        self.assertEqual(intent.operation, Operation.ANSWER_GENERAL)

    async def test_unknown_tool_answers_generally(self):
        intent = await IntentRouter(FakeLLM(tool=("delete_everything", {}))).route("hi")
        self.assertEqual(intent.operation, Operation.ANSWER_GENERAL)

    async def test_classifier_error_never_raises(self):
        intent = await IntentRouter(FakeLLM(tool=RuntimeError("boom"))).route("hi")
        self.assertEqual(intent.operation, Operation.ANSWER_GENERAL)
        self.assertEqual(intent.args, {})


if __name__ == "__main__":
    unittest.main()
