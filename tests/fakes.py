"""
In-process stand-ins for the external collaborators used by the tests.
"""

import copy
import asyncio

from shared.llm import extract_json
from shared.mail_client import MailSearchResult, MailStatus


def bucket_of(filters):
    """Name of the CRM bucket a filter list was built for."""
    for f in filters:
        if f.property != "client_status":
            continue
        if f.operator == "IN":
            return "CategoryMatch"
        return {"Active": "ActiveClient", "Inactive": "WinBack", "Pending": "Discovery"}[f.value]
    return None


def crm_brand(brand_id, name, category="General", status="", partnerships=0, deals=0):
    return {
        "id": brand_id,
        "properties": {
            "brand_name": name,
            "main_category": category,
            "client_status": status,
            "partnership_count": str(partnerships),
            "deals_count": str(deals),
        },
    }


class FakeCrm:
    def __init__(self, buckets=None, delays=None, partnerships=None, brands_by_name=None):
        self.buckets = buckets or {}
        self.delays = delays or {}
        self.partnerships = partnerships or {}
        self.brands_by_name = brands_by_name or {}
        self.available = True
        self.bucket_calls = []
        self.partnership_lookups = []

    async def search_brands(self, filters, sorts=None, limit=10, query=None):
        bucket = bucket_of(filters)
        self.bucket_calls.append(bucket)
        await asyncio.sleep(self.delays.get(bucket, 0))
        return copy.deepcopy(self.buckets.get(bucket, []))[:limit]

    async def find_brand_by_name(self, name):
        record = self.brands_by_name.get(name.lower())
        return copy.deepcopy(record) if record else None

    async def get_partnership_by_title(self, title):
        self.partnership_lookups.append(title)
        record = self.partnerships.get(title.lower())
        return copy.deepcopy(record) if record else None


class FakeTranscripts:
    def __init__(self, by_keyword=None, recent=None):
        self.by_keyword = by_keyword or {}
        self.recent = recent or []
        self.available = True
        self.calls = []

    async def search_transcripts(self, keyword=None, from_date=None, limit=10):
        self.calls.append({"keyword": keyword, "from_date": from_date, "limit": limit})
        if keyword is None:
            return list(self.recent)[:limit]
        return list(self.by_keyword.get(keyword.lower(), []))[:limit]


class FakeMail:
    def __init__(self, by_term=None, status=MailStatus.OK):
        self.by_term = by_term or {}
        self.status = status
        self.available = True
        self.calls = []

    async def search_emails(self, terms, limit=10):
        self.calls.append(list(terms))
        if self.status != MailStatus.OK:
            return MailSearchResult(status=self.status)
        emails = []
        for term in terms:
            emails.extend(self.by_term.get(term.lower(), []))
        return MailSearchResult(emails=emails[:limit])


class FakeLLM:
    """
    ``responder(prompt) -> str`` decides the completion text; ``tool`` is the
    ``(name, args)`` pair returned by ``select_tool``.
    """

    def __init__(self, responder=None, tool=None, available=True):
        self.responder = responder or (lambda prompt: "")
        self.tool = tool
        self.available = available
        self.prompts = []

    async def complete(self, prompt, temperature=0.3, max_tokens=500, json_mode=False, system=None):
        self.prompts.append(prompt)
        return self.responder(prompt)

    async def complete_json(self, prompt, **kwargs):
        return extract_json(await self.complete(prompt, **kwargs))

    async def select_tool(self, system, message, tools, temperature=0.0):
        if isinstance(self.tool, Exception):
            raise self.tool
        if callable(self.tool):
            return self.tool(message)
        return self.tool


def meeting(meeting_id, title, preview="", timestamp="2026-09-01T10:00:00+00:00"):
    return {
        "id": meeting_id,
        "type": "meeting",
        "title": title,
        "timestamp": timestamp,
        "preview": preview,
        "link": None,
        "participants": [],
    }


def email(email_id, title, preview="", timestamp="2026-09-02T10:00:00+00:00"):
    return {
        "id": email_id,
        "type": "email",
        "title": title,
        "timestamp": timestamp,
        "preview": preview,
        "link": None,
        "sender": "someone@example.com",
    }
