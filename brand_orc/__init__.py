"""
Brand Partnership Orchestrator Module

Discovers, ranks and pitches consumer brands for a film or TV production.

The orchestrator coordinates these components for each turn:
- SessionManager: Carries the current production across turns
- IntentRouter: Classifies the message into one operation
- BucketFetcher: Runs the categorized CRM queries and wildcard proposals
- CommsSearcher: Finds related meetings and emails
- Scoring/Selection: Tags, scores and diversifies the shortlist
- PitchGenerator: Writes pitch copy grounded in communication evidence

Public API:
- BrandOrchestrator: Main entry point for one assistant turn
- PipelineConfig: Tunable scores, quotas, sizes and timeouts

Example usage:
    from brand_orc import BrandOrchestrator

    orchestrator = BrandOrchestrator()
    response = await orchestrator.handle_turn(
        {"userMessage": 'Find brands for "Heist Night"', "sessionId": "abc"}
    )
"""

from .orchestrator import BrandOrchestrator
from .models import CandidateBrand, PartnershipRecord, PipelineConfig
from .enums import Bucket, Operation, Tag

__all__ = [
    "BrandOrchestrator",
    "CandidateBrand",
    "PartnershipRecord",
    "PipelineConfig",
    "Bucket",
    "Operation",
    "Tag",
]
