"""
Unit tests for brand_orc/session_manager.py and brand_orc/conversation.py
"""

import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brand_orc.conversation import ConversationStore, find_last_project_marker
from brand_orc.enums import SessionState
from brand_orc.models import PartnershipRecord
from brand_orc.session_manager import SessionManager, clean_title
from shared.kv_store import InMemoryKeyValueStore
from fakes import FakeCrm, FakeLLM

FAST_11 = {"id": "77", "properties": {"partnership_name": "Fast 11", "distributor": "Universal"}}


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestCleanTitle(unittest.TestCase):
    def test_vague_and_descriptive_titles_rejected(self):
        self.assertIsNone(clean_title("this"))
        self.assertIsNone(clean_title("a romantic comedy"))
        self.assertIsNone(clean_title(None))
        self.assertEqual(clean_title('"Fast 11"'), "Fast 11")


class TestSessionManager(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.clock = Clock()
        self.store = InMemoryKeyValueStore(clock=self.clock)
        self.crm = FakeCrm(partnerships={"fast 11": FAST_11})
        self.manager = SessionManager(self.store, self.crm, FakeLLM(available=False), ttl_seconds=60)

    async def test_follow_up_keeps_project_without_crm_lookup(self):
        first = await self.manager.resolve_turn("s1", 'Find brands for "Fast 11"')
        self.assertEqual(first.state, SessionState.SUPERSEDED_SESSION)
        self.assertEqual(first.project_name, "Fast 11")
        self.assertEqual(first.partnership.distributor, "Universal")
        self.assertEqual(self.crm.partnership_lookups, ["Fast 11"])

        second = await self.manager.resolve_turn("s1", "find more brands for this")

        self.assertEqual(second.state, SessionState.ACTIVE_SESSION)
        self.assertEqual(second.project_name, "Fast 11")
        self.assertFalse(second.looked_up_crm)
        self.assertEqual(self.crm.partnership_lookups, ["Fast 11"])

    async def test_named_title_replaces_the_stored_project(self):
        await self.manager.resolve_turn("s1", 'Find brands for "Fast 11"')

        for message in ("Find me brands for Barbie", "Show me brands for Barbie"):
            result = await self.manager.resolve_turn("s1", message)

            self.assertEqual(result.state, SessionState.SUPERSEDED_SESSION)
            self.assertEqual(result.project_name, "Barbie")
            self.assertEqual((await self.manager.load("s1")).project_name, "Barbie")
        self.assertEqual(self.crm.partnership_lookups, ["Fast 11", "Barbie", "Barbie"])

    async def test_vague_title_is_still_a_follow_up(self):
        await self.manager.resolve_turn("s1", 'Find brands for "Fast 11"')

        result = await self.manager.resolve_turn("s1", "show me more brands for this")

        self.assertEqual(result.state, SessionState.ACTIVE_SESSION)
        self.assertEqual(result.project_name, "Fast 11")
        self.assertEqual(self.crm.partnership_lookups, ["Fast 11"])

    async def test_labelled_details_supersede_the_stored_project(self):
        await self.manager.resolve_turn("s1", 'Find brands for "Fast 11"')

        result = await self.manager.resolve_turn(
            "s1", "Title: Heist Night\nSynopsis: A crew breaks into a vault."
        )

        self.assertEqual(result.state, SessionState.SUPERSEDED_SESSION)
        self.assertEqual(result.project_name, "Heist Night")
        self.assertEqual(result.partnership.synopsis, "A crew breaks into a vault.")
        self.assertEqual((await self.manager.load("s1")).project_name, "Heist Night")

    async def test_recovers_project_from_history_marker(self):
        history = "User: hi\nAssistant: Here you go\n[PRODUCTION:Fast 11]"

        result = await self.manager.resolve_turn("s2", "what about wildcards?", history)

        self.assertEqual(result.state, SessionState.ACTIVE_SESSION)
        self.assertEqual(result.project_name, "Fast 11")
        self.assertTrue(result.looked_up_crm)
        self.assertIsNotNone(await self.manager.load("s2"))

    async def test_recovers_known_project_name(self):
        result = await self.manager.resolve_turn("s3", "show me more", known_project="Fast 11")
        self.assertEqual(result.project_name, "Fast 11")

    async def test_expired_context_is_no_session(self):
        await self.manager.resolve_turn("s1", 'Find brands for "Fast 11"')
        self.clock.now += 61

        result = await self.manager.resolve_turn("s1", "hello there")

        self.assertEqual(result.state, SessionState.NO_SESSION)
        self.assertIsNone(result.partnership)

    async def test_descriptive_request_is_not_a_new_project(self):
        self.assertIsNone(
            await self.manager.detect_new_project("Generate brands for a romantic comedy")
        )

    async def test_model_can_veto_a_weak_signal(self):
        manager = SessionManager(
            self.store, self.crm, FakeLLM(lambda prompt: '{"isNewProject": false}')
        )
        self.assertIsNone(await manager.detect_new_project("Find brands for Heist Night"))

    async def test_refresh_keeps_stored_values_the_crm_lacks(self):
        await self.manager.save("s4", PartnershipRecord(title="Fast 11", synopsis="Cars again"))

        result = await self.manager.refresh_from_crm("s4", "Fast 11")

        self.assertEqual(result.partnership.distributor, "Universal")
        self.assertEqual(result.partnership.synopsis, "Cars again")
        self.assertEqual(result.partnership.crm_id, "77")


class TestConversationStore(unittest.IsolatedAsyncioTestCase):
    async def test_append_adds_marker_and_truncates(self):
        conversations = ConversationStore(InMemoryKeyValueStore(), max_chars=120)
        history = await conversations.load("s1")
        self.assertEqual(history, "")

        for i in range(5):
            history = await conversations.append("s1", None, history, f"message {i}", "reply", "Fast 11")

        stored = await conversations.load("s1")
        self.assertEqual(stored, history)
        self.assertLessEqual(len(stored), 120)
        self.assertEqual(find_last_project_marker(stored), "Fast 11")

    def test_last_marker_wins(self):
        history = "[PRODUCTION:Old]\n...\n[PRODUCTION: New One ]"
        self.assertEqual(find_last_project_marker(history), "New One")
        self.assertIsNone(find_last_project_marker(""))


if __name__ == "__main__":
    unittest.main()
