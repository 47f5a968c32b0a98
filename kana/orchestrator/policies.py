from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PipelinePolicies:
    max_history: int = 20
    log_search_limit: int = 10


@dataclass
class ProcessPolicies:
    git_timeout_s: float = 10.0
    gh_timeout_s: float = 30.0
    code_assistant_timeout_s: float = 120.0
    code_review_timeout_s: float = 180.0
    max_output_chars: int = 4000


__all__ = ["PipelinePolicies", "ProcessPolicies"]
