"""
Unit tests for brand_orc/pitch_generator.py
"""

import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from brand_orc.enums import Bucket, Tag
from brand_orc.models import (
    NO_EVIDENCE,
    CandidateBrand,
    CandidateId,
    CommsRecord,
    CommsResult,
    PartnershipRecord,
)
from brand_orc.pitch_generator import PitchGenerator, find_evidence, parse_sections
from fakes import FakeLLM

HEIST = PartnershipRecord(title="Heist Night", synopsis="A crew plans a heist.")

GENERATED = """
Brand: SafeGuard
Integration idea: The crew studies a SafeGuard panel before the break-in.
Why it works: The product is the obstacle.
Insight: Meeting "SafeGuard Q3 review" discussed a heist tie-in.

Brand: CrunchCo
Integration idea: The getaway driver snacks on CrunchCo.
Why it works: Comic relief.
Insight: Made up evidence.
"""


def brand(cid, name, category="General"):
    return CandidateBrand(
        id=CandidateId.from_crm(cid),
        name=name,
        category=category,
        source_bucket=Bucket.CATEGORY_MATCH,
        tags=[Tag.CATEGORY_MATCH],
    )


class TestParseSections(unittest.TestCase):
    def test_four_field_blocks(self):
        sections = parse_sections(GENERATED)
        self.assertEqual([s["brand"] for s in sections], ["SafeGuard", "CrunchCo"])
        self.assertEqual(sections[1]["why_it_works"], "Comic relief.")

    def test_markdown_markers(self):
        sections = parse_sections("**Brand:** Vroom\n**Integration idea:** Drive.\n**Why it works:** Speed.")
        self.assertEqual(sections[0]["brand"], "Vroom")
        self.assertEqual(sections[0]["integration_idea"], "Drive.")
        self.assertEqual(sections[0]["insight"], "")

    def test_empty_text(self):
        self.assertEqual(parse_sections(""), [])
        self.assertEqual(parse_sections("no blocks here"), [])


class TestFindEvidence(unittest.TestCase):
    def test_meeting_preferred_over_email(self):
        comms = CommsResult(
            meetings=[CommsRecord(id="m1", type="meeting", title="Weekly", preview="SafeGuard budget")],
            emails=[CommsRecord(id="e1", type="email", title="SafeGuard deck")],
        )
        self.assertEqual(find_evidence(brand("1", "SafeGuard"), comms).id, "m1")

    def test_no_match(self):
        comms = CommsResult(emails=[CommsRecord(id="e1", type="email", title="Other")])
        self.assertIsNone(find_evidence(brand("1", "SafeGuard"), comms))
        self.assertIsNone(find_evidence(brand("1", "SafeGuard"), None))


class TestGeneratePitches(unittest.IsolatedAsyncioTestCase):
    async def test_two_in_two_out_with_empty_generation(self):
        generator = PitchGenerator(FakeLLM(lambda prompt: ""))
        candidates = [brand("1", "SafeGuard", "Security"), brand("2", "CrunchCo", "Snacks")]

        result = await generator.generate_pitches(candidates, HEIST)

        self.assertEqual(len(result.candidates), 2)
        for candidate in result.candidates:
            self.assertEqual(candidate.pitch["insight"], NO_EVIDENCE)
            self.assertFalse(candidate.pitch["generated"])
            self.assertTrue(candidate.pitch["integration_idea"])
        self.assertIsNone(candidates[0].pitch)

    async def test_without_llm(self):
        result = await PitchGenerator(None).generate_pitches([brand("1", "SafeGuard")], HEIST)
        self.assertEqual(len(result.candidates), 1)
        self.assertEqual(result.raw_text, "")

    async def test_name_match_and_evidence_rules(self):
        comms = CommsResult(
            meetings=[CommsRecord(id="m1", type="meeting", title="SafeGuard Q3 review")]
        )
        generator = PitchGenerator(FakeLLM(lambda prompt: GENERATED))
        candidates = [brand("2", "CrunchCo"), brand("1", "SafeGuard")]

        result = await generator.generate_pitches(candidates, HEIST, comms)
        by_name = {c.name: c for c in result.candidates}

        self.assertIn("panel", by_name["SafeGuard"].pitch["integration_idea"])
        self.assertEqual(by_name["SafeGuard"].pitch["evidence"]["id"], "m1")
        self.assertIn("snacks", by_name["CrunchCo"].pitch["integration_idea"])
        # no evidence for CrunchCo, so the invented insight is replaced
        self.assertEqual(by_name["CrunchCo"].pitch["insight"], NO_EVIDENCE)
        self.assertIsNone(by_name["CrunchCo"].pitch["evidence"])

    async def test_positional_fallback(self):
        text = (
            "Brand: Something Else\nIntegration idea: First idea.\nWhy it works: A.\nInsight: x\n"
            "Brand: Another Name\nIntegration idea: Second idea.\nWhy it works: B.\nInsight: y\n"
        )
        generator = PitchGenerator(FakeLLM(lambda prompt: text))
        candidates = [brand("1", "SafeGuard"), brand("2", "CrunchCo")]

        with self.assertLogs("brand_orc.pitch_generator", level="WARNING"):
            result = await generator.generate_pitches(candidates, HEIST)

        self.assertEqual(result.candidates[0].pitch["integration_idea"], "First idea.")
        self.assertEqual(result.candidates[1].pitch["integration_idea"], "Second idea.")
        self.assertEqual(result.candidates[0].pitch["brand"], "SafeGuard")

    async def test_fewer_blocks_than_candidates(self):
        text = "Brand: SafeGuard\nIntegration idea: Only one.\nWhy it works: A.\nInsight: x"
        generator = PitchGenerator(FakeLLM(lambda prompt: text))
        candidates = [brand("1", "SafeGuard"), brand("2", "CrunchCo")]

        result = await generator.generate_pitches(candidates, HEIST)

        self.assertEqual(len(result.candidates), 2)
        self.assertTrue(result.candidates[0].pitch["generated"])
        self.assertFalse(result.candidates[1].pitch["generated"])


if __name__ == "__main__":
    unittest.main()
