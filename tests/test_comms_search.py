"""
Unit tests for brand_orc/comms_search.py
"""

import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brand_orc.comms_search import CommsSearcher, build_timeline
from brand_orc.models import PartnershipRecord
from shared.mail_client import MailStatus
from fakes import FakeMail, FakeTranscripts, email, meeting


class TestSearchCommunications(unittest.IsolatedAsyncioTestCase):
    async def test_zero_terms_and_empty_backends(self):
        transcripts = FakeTranscripts()
        mail = FakeMail()
        searcher = CommsSearcher(transcripts, mail)

        result = await searcher.search_communications(PartnershipRecord())

        self.assertEqual(result.to_dict()["meetings"], [])
        self.assertEqual(result.to_dict()["emails"], [])
        # exactly one recency query, no keyword searches
        self.assertEqual(len(transcripts.calls), 1)
        self.assertIsNone(transcripts.calls[0]["keyword"])
        self.assertIsNotNone(transcripts.calls[0]["from_date"])
        self.assertEqual(mail.calls, [])

    async def test_results_deduplicated_in_term_order(self):
        m1 = meeting("m1", "Fast 11 kickoff")
        m2 = meeting("m2", "Vin Diesel availability")
        transcripts = FakeTranscripts(by_keyword={"fast 11": [m1], "vin diesel": [m1, m2]})
        mail = FakeMail(by_term={"fast 11": [email("e1", "Fast 11 deck")]})
        searcher = CommsSearcher(transcripts, mail)

        result = await searcher.search_communications(
            PartnershipRecord(title="Fast 11", cast=["Vin Diesel"])
        )

        self.assertEqual([m.id for m in result.meetings], ["m1", "m2"])
        self.assertEqual(result.meetings[0].matched_keyword, "Fast 11")
        self.assertEqual([e.id for e in result.emails], ["e1"])
        self.assertNotIn(None, [c["keyword"] for c in transcripts.calls])

    async def test_generic_term_skips_transcripts(self):
        transcripts = FakeTranscripts(recent=[meeting("r1", "Weekly sync")])
        mail = FakeMail()
        searcher = CommsSearcher(transcripts, mail)

        result = await searcher.search_communications(PartnershipRecord(title="Thriller"))

        self.assertEqual([c["keyword"] for c in transcripts.calls], [None])
        self.assertEqual(mail.calls, [["Thriller"]])
        self.assertEqual([m.id for m in result.meetings], ["r1"])

    async def test_policy_block_is_reported(self):
        searcher = CommsSearcher(FakeTranscripts(), FakeMail(status=MailStatus.FORBIDDEN_POLICY))
        result = await searcher.search_communications(PartnershipRecord(title="Fast 11"))
        self.assertEqual(result.mail_status, "forbidden_policy")
        self.assertEqual(result.emails, [])

    async def test_brand_activity_has_no_recency_fallback(self):
        transcripts = FakeTranscripts(recent=[meeting("r1", "Weekly sync")])
        searcher = CommsSearcher(transcripts, FakeMail())

        result = await searcher.search_brand_activity("SafeGuard")

        self.assertEqual(result.meetings, [])
        self.assertEqual([c["keyword"] for c in transcripts.calls], ["SafeGuard"])


class TestBuildTimeline(unittest.IsolatedAsyncioTestCase):
    async def test_newest_first(self):
        transcripts = FakeTranscripts(
            by_keyword={"safeguard": [meeting("m1", "SafeGuard intro", timestamp="2026-08-01T00:00:00")]}
        )
        mail = FakeMail(
            by_term={"safeguard": [email("e1", "SafeGuard follow-up", timestamp="2026-09-01T00:00:00")]}
        )
        result = await CommsSearcher(transcripts, mail).search_brand_activity("SafeGuard")

        timeline = build_timeline(result)

        self.assertEqual([r["id"] for r in timeline], ["e1", "m1"])


if __name__ == "__main__":
    unittest.main()
