"""
Crawler module for Web Harvest.

Provides the adaptive, phase-driven crawler and its building blocks:
- Sliding-window rate limiting and robots.txt compliance
- Interaction planning and execution
- Tension scoring and stasis detection
- Discovery log and crawl report
"""

from web_harvest.crawler.adaptive import AdaptiveCrawler
from web_harvest.crawler.collectors import DiscoveryCollector
from web_harvest.crawler.executor import InteractionExecutor
from web_harvest.crawler.models import (
    Click,
    CrawlState,
    Discovery,
    DiscoveryKind,
    ExtractionLog,
    Hover,
    Interaction,
    Navigate,
    Phase,
    Report,
    Scroll,
    StopReason,
    Wait,
)
from web_harvest.crawler.planner import (
    InteractionPlanner,
    PageSignals,
    PlannerInput,
    ScrollOnlyPlanner,
)
from web_harvest.crawler.rate_limiter import RateLimiter, RateLimitStatus
from web_harvest.crawler.robots import RobotsPolicy, RobotsRuleset
from web_harvest.crawler.tension import (
    PhaseObservation,
    TensionMeter,
    TensionState,
    TensionWeights,
)

__all__ = [
    "AdaptiveCrawler",
    "DiscoveryCollector",
    "InteractionExecutor",
    "Interaction",
    "Scroll",
    "Click",
    "Hover",
    "Navigate",
    "Wait",
    "Discovery",
    "DiscoveryKind",
    "ExtractionLog",
    "Phase",
    "Report",
    "CrawlState",
    "StopReason",
    "InteractionPlanner",
    "ScrollOnlyPlanner",
    "PageSignals",
    "PlannerInput",
    "RateLimiter",
    "RateLimitStatus",
    "RobotsPolicy",
    "RobotsRuleset",
    "PhaseObservation",
    "TensionMeter",
    "TensionState",
    "TensionWeights",
]
