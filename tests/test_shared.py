"""
Unit tests for the shared/ helpers and collaborator clients
"""

import os
import sys
import time
import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.crm_client import CrmClient, CrmFilter
from shared.kv_store import CosmosKeyValueStore, InMemoryKeyValueStore
from shared.llm import LLMClient, extract_json
from shared.mail_client import (
    MailClient,
    MailStatus,
    PolicyBlockedError,
    TokenCache,
    TokenExpiredError,
)
from shared.progress_log import MAX_PROGRESS_ENTRIES, ProgressLog, read_progress
from shared.transcripts_client import TranscriptsClient
from shared.util import settle_all, slugify, to_int, truncate, uniq_short, with_timeout


class TestExtractJson(unittest.TestCase):
    def test_fenced_block(self):
        self.assertEqual(extract_json('Sure:\n```json\n{"a": 1}\n```'), {"a": 1})

    def test_outer_braces(self):
        self.assertEqual(extract_json('Result: {"terms": ["x"]} done'), {"terms": ["x"]})

    def test_direct_and_invalid(self):
        self.assertEqual(extract_json("[1, 2]"), [1, 2])
        self.assertIsNone(extract_json("nothing"))
        self.assertIsNone(extract_json(""))
        self.assertIsNone(extract_json(None))


class TestTextHelpers(unittest.TestCase):
    def test_uniq_short(self):
        self.assertEqual(uniq_short([" Fast  11 ", "fast 11", "", None, "Vin"], limit=5), ["Fast 11", "Vin"])
        self.assertEqual(len(uniq_short([str(i) for i in range(20)])), 7)

    def test_truncate_keeps_the_requested_side(self):
        self.assertEqual(truncate("abcdef", 3), "def")
        self.assertEqual(truncate("abcdef", 3, keep="start"), "abc")
        self.assertEqual(truncate(None, 3), "")

    def test_slugify_and_to_int(self):
        self.assertEqual(slugify("Café Noir & Co."), "cafe-noir-co")
        self.assertEqual(slugify(""), "unnamed")
        self.assertEqual(to_int("12.0"), 12)
        self.assertEqual(to_int("n/a", 3), 3)


class TestAsyncHelpers(unittest.IsolatedAsyncioTestCase):
    async def test_with_timeout_returns_default(self):
        async def slow():
            await asyncio.sleep(1)
            return "late"

        async def broken():
            raise RuntimeError("boom")

        self.assertEqual(await with_timeout(slow(), 0.01, "default"), "default")
        self.assertEqual(await with_timeout(broken(), 1, []), [])

    async def test_settle_all_keeps_order_and_replaces_failures(self):
        async def value(v, delay):
            await asyncio.sleep(delay)
            return v

        async def broken():
            raise RuntimeError("boom")

        results = await settle_all([value("a", 0.02), broken(), value("c", 0)], default=[])
        self.assertEqual(results, ["a", [], "c"])


class TestKeyValueStore(unittest.IsolatedAsyncioTestCase):
    async def test_in_memory_expiry(self):
        now = [100.0]
        store = InMemoryKeyValueStore(clock=lambda: now[0])
        await store.set("k", {"v": 1}, 10)
        self.assertEqual(await store.get("k"), {"v": 1})

        now[0] = 111.0
        self.assertIsNone(await store.get("k"))

    async def test_in_memory_delete(self):
        store = InMemoryKeyValueStore()
        await store.set("k", "v", 10)
        await store.delete("k")
        self.assertIsNone(await store.get("k"))

    def test_cosmos_ids_are_sanitized(self):
        self.assertEqual(CosmosKeyValueStore._item_id("progress:s/1:r?2#x"), "progress:s_1:r_2_x")

    @patch("shared.kv_store.get_container")
    async def test_cosmos_expired_item_reads_as_missing(self, mock_get_container):
        container = MagicMock()
        container.read_item.return_value = {"value": "old", "expires_at": time.time() - 5}
        mock_get_container.return_value = container

        store = CosmosKeyValueStore("db", "state")

        self.assertIsNone(await store.get("session:abc"))

    @patch("shared.kv_store.get_container")
    async def test_cosmos_write_sets_ttl(self, mock_get_container):
        container = MagicMock()
        mock_get_container.return_value = container

        await CosmosKeyValueStore("db", "state").set("session:a/b", {"x": 1}, 60)

        item = container.upsert_item.call_args.args[0]
        self.assertEqual(item["id"], "session:a_b")
        self.assertEqual(item["key"], "session:a/b")
        self.assertEqual(item["ttl"], 60)


class TestProgressLog(unittest.IsolatedAsyncioTestCase):
    async def test_entries_are_capped(self):
        store = InMemoryKeyValueStore()
        progress = ProgressLog(store, "s1", "r1")
        await progress.init(message="hi")

        for i in range(MAX_PROGRESS_ENTRIES + 20):
            await progress.emit(f"step {i}", "info")
        await progress.done(operation="FindBrands")

        state = await read_progress(store, "s1", "r1")
        self.assertEqual(len(state["steps"]), MAX_PROGRESS_ENTRIES)
        self.assertEqual(state["steps"][-1]["text"], f"step {MAX_PROGRESS_ENTRIES + 19}")
        self.assertTrue(state["done"])
        self.assertEqual(state["meta"]["operation"], "FindBrands")

    async def test_concurrent_emits_are_not_lost(self):
        store = InMemoryKeyValueStore()
        progress = ProgressLog(store, "s1", "r2")
        await asyncio.gather(*[progress.emit(f"step {i}") for i in range(10)])
        state = await read_progress(store, "s1", "r2")
        self.assertEqual(len(state["steps"]), 10)

    async def test_unknown_run(self):
        state = await read_progress(InMemoryKeyValueStore(), "nope", "nope")
        self.assertEqual(state, {"steps": [], "done": False, "meta": {}})

    async def test_store_failure_is_swallowed(self):
        store = MagicMock()
        store.get = AsyncMock(side_effect=RuntimeError("down"))
        store.set = AsyncMock(side_effect=RuntimeError("down"))
        progress = ProgressLog(store, "s", "r")
        await progress.init()
        await progress.emit("still fine")
        await progress.done()


class TestTokenCache(unittest.IsolatedAsyncioTestCase):
    async def test_token_reused_until_expiry_margin(self):
        now = [0.0]
        fetch = AsyncMock(side_effect=[("t1", 3600), ("t2", 3600)])
        cache = TokenCache(fetch, clock=lambda: now[0])

        self.assertFalse(cache.is_valid())
        self.assertEqual(await cache.get(), "t1")
        now[0] = 3000.0
        self.assertEqual(await cache.get(), "t1")
        # refreshed 300 seconds before the real expiry
        now[0] = 3301.0
        self.assertEqual(await cache.get(), "t2")
        self.assertEqual(fetch.await_count, 2)

    async def test_invalidate(self):
        fetch = AsyncMock(return_value=("t", 3600))
        cache = TokenCache(fetch)
        await cache.get()
        cache.invalidate()
        self.assertFalse(cache.is_valid())

    async def test_invalidating_a_stale_token_keeps_the_fresh_one(self):
        fetch = AsyncMock(return_value=("fresh", 3600))
        cache = TokenCache(fetch)
        await cache.get()
        cache.invalidate("stale")
        self.assertTrue(cache.is_valid())


class TestMailClient(unittest.IsolatedAsyncioTestCase):
    async def test_no_credentials(self):
        client = MailClient(tenant_id="", client_id="", client_secret="", mailbox="")
        result = await client.search_emails(["Fast 11"])
        self.assertEqual(result.status, MailStatus.NO_CREDENTIALS)

    def client(self):
        client = MailClient(tenant_id="t", client_id="c", client_secret="s", mailbox="m@x.com")
        client.token_cache.get = AsyncMock(return_value="token")
        return client

    async def test_policy_block(self):
        client = self.client()
        client._search_term = AsyncMock(side_effect=PolicyBlockedError("mail", "blocked", 403))
        result = await client.search_emails(["Fast 11"])
        self.assertEqual(result.status, MailStatus.FORBIDDEN_POLICY)

    async def test_merges_and_sorts_newest_first(self):
        client = self.client()
        by_term = {
            "a": [{"id": "1", "timestamp": "2026-01-01"}, {"id": "2", "timestamp": "2026-03-01"}],
            "b": [{"id": "1", "timestamp": "2026-01-01"}],
        }
        client._search_term = AsyncMock(side_effect=lambda token, term: by_term[term])

        result = await client.search_emails(["a", "b"])

        self.assertEqual(result.status, MailStatus.OK)
        self.assertEqual([e["id"] for e in result.emails], ["2", "1"])

    async def test_rejected_token_is_refreshed_and_the_search_retried(self):
        client = MailClient(tenant_id="t", client_id="c", client_secret="s", mailbox="m@x.com")
        client.token_cache = TokenCache(AsyncMock(side_effect=[("stale", 3600), ("fresh", 3600)]))
        client._search_term = AsyncMock(
            side_effect=[
                TokenExpiredError("mail", "expired", 401),
                [{"id": "1", "timestamp": "2026-01-01"}],
            ]
        )

        result = await client.search_emails(["Fast 11"])

        self.assertEqual(result.status, MailStatus.OK)
        self.assertEqual([e["id"] for e in result.emails], ["1"])
        self.assertEqual(client._search_term.call_args_list[1].args, ("fresh", "Fast 11"))

    async def test_all_terms_failing_is_an_error(self):
        client = self.client()
        client._search_term = AsyncMock(side_effect=RuntimeError("down"))
        result = await client.search_emails(["a", "b"])
        self.assertEqual(result.status, MailStatus.ERROR)


class TestTranscriptsClient(unittest.IsolatedAsyncioTestCase):
    async def test_rejected_keyword_retried_once_without_it(self):
        client = TranscriptsClient(api_key="key")
        client._post = AsyncMock(
            side_effect=[
                {"errors": [{"message": "Invalid argument: keyword"}]},
                {"data": {"transcripts": [{"id": "t1", "title": "Kickoff", "date": 1767225600000}]}},
            ]
        )

        results = await client.search_transcripts(keyword="Fast 11", limit=5)

        self.assertEqual([r["id"] for r in results], ["t1"])
        self.assertTrue(results[0]["timestamp"].startswith("2026-01-01"))
        self.assertEqual(client._post.await_count, 2)
        self.assertEqual(client._post.call_args_list[1].args[1], {"limit": 5})

    async def test_other_errors_give_empty_results(self):
        client = TranscriptsClient(api_key="key")
        client._post = AsyncMock(return_value={"errors": [{"message": "rate limited"}]})
        self.assertEqual(await client.search_transcripts(keyword="Fast 11"), [])
        self.assertEqual(client._post.await_count, 1)

    async def test_unconfigured(self):
        self.assertEqual(await TranscriptsClient(api_key="").search_transcripts("x"), [])

    def test_query_omits_empty_keyword(self):
        self.assertNotIn("$keyword", TranscriptsClient.build_query(None))
        self.assertIn("keyword: $keyword", TranscriptsClient.build_query("Fast 11"))


class TestCrmClient(unittest.IsolatedAsyncioTestCase):
    def test_filter_serialization(self):
        self.assertEqual(
            CrmFilter("main_category", "IN", values=("Security",)).to_hubspot(),
            {"propertyName": "main_category", "operator": "IN", "values": ["Security"]},
        )
        self.assertEqual(
            CrmFilter("partnership_count", "GTE", 2).to_hubspot(),
            {"propertyName": "partnership_count", "operator": "GTE", "value": "2"},
        )
        with self.assertRaises(ValueError):
            CrmFilter("x", "LIKE", "y").to_hubspot()

    async def test_unconfigured_client_returns_nothing(self):
        client = CrmClient(access_token="")
        self.assertFalse(client.available)
        self.assertEqual(await client.search_brands([]), [])
        self.assertIsNone(await client.get_partnership_by_title("Fast 11"))


class TestLLMClient(unittest.IsolatedAsyncioTestCase):
    async def test_unavailable_client_returns_empty(self):
        client = LLMClient(api_key="", azure_endpoint="", azure_api_key="")
        self.assertFalse(client.available)
        self.assertEqual(await client.complete("hi"), "")
        self.assertIsNone(await client.complete_json("hi"))
        self.assertIsNone(await client.select_tool("sys", "hi", []))


if __name__ == "__main__":
    unittest.main()
