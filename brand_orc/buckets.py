"""
Candidate Bucket Fetcher

Issues the categorized CRM queries (plus the AI wildcard proposals and the
communications search) concurrently, then merges the bucket results into one
candidate list keyed by candidate id.

The merge walks the buckets in BUCKET_PRIORITY order after every query has
settled, so the primary tag of a candidate never depends on which query
answered first.
"""

import json
import hashlib
import logging
from typing import Dict, List, Optional, Tuple

from shared import config as settings
from shared.crm_client import CrmFilter, CrmSort
from shared.llm import LLMClient
from shared.progress_log import ProgressSink, ProgressSteps
from shared.prompts import WILDCARD_PROMPT
from shared.util import settle_all, with_timeout

from .categorizer import resolve_categories, static_categories
from .enums import BUCKET_PRIORITY, Bucket, Tag
from .models import (
    BucketFetchResult,
    CandidateBrand,
    CandidateId,
    CommsResult,
    PartnershipRecord,
    PipelineConfig,
)
from .normalization import normalize_brand

logger = logging.getLogger(__name__)

CRM_BUCKETS = [
    Bucket.ACTIVE_CLIENT,
    Bucket.CATEGORY_MATCH,
    Bucket.WIN_BACK,
    Bucket.DISCOVERY,
]


def bucket_criteria(
    bucket: Bucket, categories: List[str], config: PipelineConfig
) -> Tuple[List[CrmFilter], List[CrmSort], int]:
    """Filters, sorts and limit for one CRM bucket. An empty category list drops the category filter."""
    category_filter = (
        [CrmFilter("main_category", "IN", values=tuple(categories))] if categories else []
    )
    limit = config.bucket_limits.get(bucket, 10)

    if bucket == Bucket.ACTIVE_CLIENT:
        filters = [
            CrmFilter("client_status", "EQ", "Active"),
            CrmFilter("partnership_count", "GTE", config.active_min_partnerships),
        ] + category_filter
        return filters, [CrmSort("partnership_count")], limit

    if bucket == Bucket.CATEGORY_MATCH:
        filters = category_filter + [
            CrmFilter("client_status", "IN", values=("Pending", "Inactive")),
            CrmFilter("partnership_count", "GT", 0),
        ]
        return filters, [CrmSort("hs_lastmodifieddate")], limit

    if bucket == Bucket.WIN_BACK:
        # former partners only, not cold prospects
        filters = [
            CrmFilter("client_status", "EQ", "Inactive"),
            CrmFilter("partnership_count", "GT", 0),
        ] + category_filter
        return filters, [CrmSort("hs_lastmodifieddate")], limit

    if bucket == Bucket.DISCOVERY:
        filters = [
            CrmFilter("client_status", "EQ", "Pending"),
            CrmFilter("partnership_count", "LTE", 1),
        ]
        return filters, [CrmSort("createdate")], limit

    raise ValueError(f"{bucket} is not a CRM bucket")


def bucket_reason(bucket: Bucket, brand: CandidateBrand) -> str:
    if bucket == Bucket.CATEGORY_MATCH:
        return f"{brand.category} fits the production's brand categories"
    if bucket == Bucket.WIN_BACK:
        return (
            f"Former partner with {brand.partnership_count} past partnerships, "
            "currently inactive and worth re-engaging"
        )
    if bucket == Bucket.ACTIVE_CLIENT:
        return f"Active client with {brand.partnership_count} partnerships"
    if bucket == Bucket.DISCOVERY:
        return "Recently added to the CRM and not yet placed"
    if bucket == Bucket.USER_SUGGESTED:
        return "Requested in this conversation"
    return "AI-proposed creative fit"


def merge_buckets(bucket_results: Dict[Bucket, List[CandidateBrand]]) -> List[CandidateBrand]:
    """
    Merge bucket results in BUCKET_PRIORITY order.

    The first bucket that lists a candidate id sets its primary tag and reason;
    later buckets only add their tag as a secondary tag.
    """
    merged: Dict[str, CandidateBrand] = {}
    for bucket in BUCKET_PRIORITY:
        for candidate in bucket_results.get(bucket, []):
            key = candidate.id.value
            existing = merged.get(key)
            if existing is None:
                candidate.source_bucket = bucket
                candidate.tags = [Tag.for_bucket(bucket)]
                if not candidate.reason:
                    candidate.reason = bucket_reason(bucket, candidate)
                merged[key] = candidate
            else:
                existing.add_tag(Tag.for_bucket(bucket))
    return list(merged.values())


def criteria_cache_key(bucket: Bucket, filters, sorts, limit) -> str:
    payload = json.dumps(
        {
            "filters": [f.to_hubspot() for f in filters],
            "sorts": [s.to_hubspot() for s in sorts],
            "limit": limit,
        },
        sort_keys=True,
    )
    return f"buckets:{bucket.value}:{hashlib.sha1(payload.encode()).hexdigest()}"


class BucketFetcher:
    """
    Runs the bucket queries for one production.

    Responsibilities:
    - Resolve the relevant category set
    - Query the four CRM buckets and the wildcard proposals concurrently
    - Run the communications search alongside the bucket queries
    - Cache raw CRM bucket results for a few minutes
    """

    def __init__(
        self,
        crm,
        comms_searcher=None,
        llm: Optional[LLMClient] = None,
        store=None,
        config: Optional[PipelineConfig] = None,
        cache_ttl_seconds: int = settings.BUCKET_CACHE_TTL_SECONDS,
    ):
        self.crm = crm
        self.comms_searcher = comms_searcher
        self.llm = llm
        self.store = store
        self.config = config or PipelineConfig()
        self.cache_ttl_seconds = cache_ttl_seconds

    async def _cached_search(self, bucket: Bucket, filters, sorts, limit) -> List[dict]:
        key = criteria_cache_key(bucket, filters, sorts, limit)
        if self.store is not None:
            try:
                cached = await self.store.get(key)
                if isinstance(cached, list):
                    logger.debug(f"[BucketFetcher] Cache hit for {bucket.value}")
                    return cached
            except Exception as e:
                logger.warning(f"[BucketFetcher] Cache read failed for {bucket.value}: {e}")

        records = await self.crm.search_brands(filters, sorts, limit)

        if self.store is not None and records:
            try:
                await self.store.set(key, records, self.cache_ttl_seconds)
            except Exception as e:
                logger.warning(f"[BucketFetcher] Cache write failed for {bucket.value}: {e}")
        return records

    async def fetch_bucket(self, bucket: Bucket, categories: List[str]) -> List[CandidateBrand]:
        filters, sorts, limit = bucket_criteria(bucket, categories, self.config)
        records = await with_timeout(
            self._cached_search(bucket, filters, sorts, limit),
            self.config.call_timeout_seconds,
            [],
            f"bucket {bucket.value}",
        )
        brands = [normalize_brand(r, i) for i, r in enumerate(records or [])]
        for brand in brands:
            brand.reason = bucket_reason(bucket, brand)
        logger.info(f"[BucketFetcher] {bucket.value}: {len(brands)} brands")
        return brands

    async def propose_wildcards(self, partnership: PartnershipRecord) -> List[CandidateBrand]:
        """AI-proposed brands that need not exist in the CRM; ids are synthetic."""
        if self.llm is None or not self.llm.available or not (
            partnership.synopsis or partnership.title
        ):
            return []

        prompt = WILDCARD_PROMPT.format(
            count=self.config.wildcard_count,
            excluded=", ".join(self.config.mega_brands[:8]),
            production=partnership.summary(),
        )
        parsed = await with_timeout(
            self.llm.complete_json(prompt, temperature=0.8, max_tokens=500),
            self.config.llm_timeout_seconds,
            None,
            "wildcard proposals",
        )
        proposals = parsed.get("brands") if isinstance(parsed, dict) else None
        if not isinstance(proposals, list):
            logger.info("[BucketFetcher] No usable wildcard proposals")
            return []

        mega = {m.lower() for m in self.config.mega_brands}
        wildcards = []
        for proposal in proposals:
            if isinstance(proposal, str):
                proposal = {"name": proposal}
            if not isinstance(proposal, dict):
                continue
            name = str(proposal.get("name") or "").strip()
            if not name or name.lower() in mega:
                continue
            index = len(wildcards)
            wildcards.append(
                CandidateBrand(
                    id=CandidateId.synthetic(name, index),
                    name=name,
                    category=str(proposal.get("category") or "General"),
                    reason=str(proposal.get("reason") or "").strip(),
                )
            )
            if len(wildcards) >= self.config.wildcard_count:
                break
        return wildcards

    async def fetch_buckets(
        self,
        partnership: PartnershipRecord,
        progress: Optional[ProgressSink] = None,
        include_wildcards: bool = True,
        include_comms: bool = True,
        use_llm_categories: bool = True,
    ) -> BucketFetchResult:
        progress = progress or ProgressSink()

        await progress.emit("Working out which brand categories fit", ProgressSteps.CATEGORIES)
        if use_llm_categories:
            categories = await resolve_categories(partnership, self.llm, self.config)
        else:
            categories = static_categories(partnership)
        await progress.emit(
            f"Categories: {', '.join(categories) if categories else 'all'}",
            ProgressSteps.CATEGORIES,
        )

        await progress.emit("Searching the brand database", ProgressSteps.BUCKETS)
        bucket_tasks = [self.fetch_bucket(bucket, categories) for bucket in CRM_BUCKETS]
        wildcard_task = (
            self.propose_wildcards(partnership) if include_wildcards else _empty_list()
        )
        comms_task = (
            self.comms_searcher.search_communications(partnership, progress)
            if include_comms and self.comms_searcher is not None
            else _empty_comms()
        )

        *crm_results, wildcards, comms = await settle_all(
            bucket_tasks + [wildcard_task, comms_task], default=[]
        )
        if not isinstance(comms, CommsResult):
            comms = CommsResult()

        bucket_results: Dict[Bucket, List[CandidateBrand]] = dict(zip(CRM_BUCKETS, crm_results))

        crm_names = {
            b.name.strip().lower() for brands in crm_results for b in brands if b.name
        }
        bucket_results[Bucket.WILDCARD] = [
            w for w in wildcards if w.name.strip().lower() not in crm_names
        ]
        dropped = len(wildcards) - len(bucket_results[Bucket.WILDCARD])
        if dropped:
            logger.info(f"[BucketFetcher] Dropped {dropped} wildcards already in the CRM results")

        brands = merge_buckets(bucket_results)
        await progress.emit(f"Found {len(brands)} candidate brands", ProgressSteps.BUCKETS)
        return BucketFetchResult(brands=brands, communications=comms, categories=categories)

    async def fetch_named_brands(self, names: List[str]) -> List[CandidateBrand]:
        """Look up brands the user named; unknown names get synthetic ids."""
        lookups = await settle_all(
            [
                with_timeout(
                    self.crm.find_brand_by_name(name),
                    self.config.call_timeout_seconds,
                    None,
                    f"brand lookup '{name}'",
                )
                for name in names
            ],
            default=None,
        )

        brands: Dict[str, CandidateBrand] = {}
        for index, (name, record) in enumerate(zip(names, lookups)):
            if record:
                brand = normalize_brand(record, index)
            else:
                brand = CandidateBrand(
                    id=CandidateId.synthetic(name, index, prefix="suggested"), name=name
                )
            if brand.id.value in brands:
                continue
            brand.source_bucket = Bucket.USER_SUGGESTED
            brand.tags = [Tag.USER_SUGGESTED]
            brand.reason = bucket_reason(Bucket.USER_SUGGESTED, brand)
            brands[brand.id.value] = brand
        return list(brands.values())


async def _empty_list() -> list:
    return []


async def _empty_comms() -> CommsResult:
    return CommsResult()
