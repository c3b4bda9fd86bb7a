"""Commitgate - confidence-gated autonomous commits.

Decides, for each AI-proposed graph mutation, whether to commit it
automatically, hold it for human review, or reject it, and keeps a
revertible audit trail of every decision.
"""

from commitgate.config import AutonomousConfig, load_config, save_config
from commitgate.errors import CommitGateError, ErrorCode
from commitgate.events import EventBridge, ReviewEvent, ReviewEventType
from commitgate.presets import get_preset_config
from commitgate.provenance import ProvenanceStore, SQLiteProvenanceStore
from commitgate.ratelimit import RateLimitCheck, RateLimiter
from commitgate.review import ReviewActions, ReviewQueue
from commitgate.service import (
    AutonomousCommitService,
    MultiFactorStack,
    build_commit_service,
)
from commitgate.types import (
    AutoCommitProvenance,
    CommitResult,
    ConfidenceSnapshot,
    Decision,
    DecisionAction,
    Proposal,
    ProposedConnection,
    ProposedEntity,
    ProvenanceSource,
    Resource,
    RevertSnapshot,
    RevertTarget,
    ReviewStatus,
    TargetType,
    TransitionRecord,
    WorkflowResult,
)

__version__ = "0.1.0"

__all__ = [
    # Service
    "AutonomousCommitService",
    "MultiFactorStack",
    "build_commit_service",
    "RateLimiter",
    "RateLimitCheck",
    # Config
    "AutonomousConfig",
    "get_preset_config",
    "load_config",
    "save_config",
    # Audit
    "ProvenanceStore",
    "SQLiteProvenanceStore",
    # Review
    "ReviewActions",
    "ReviewQueue",
    "EventBridge",
    "ReviewEvent",
    "ReviewEventType",
    # Types
    "AutoCommitProvenance",
    "CommitResult",
    "ConfidenceSnapshot",
    "Decision",
    "DecisionAction",
    "Proposal",
    "ProposedConnection",
    "ProposedEntity",
    "ProvenanceSource",
    "Resource",
    "RevertSnapshot",
    "RevertTarget",
    "ReviewStatus",
    "TargetType",
    "TransitionRecord",
    "WorkflowResult",
    # Errors
    "CommitGateError",
    "ErrorCode",
]
