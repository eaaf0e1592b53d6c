"""
Enumeration definitions for the attribution engine.

This module provides the closed vocabularies used across the engine: marketing
channels and their families, pipeline stages, attribution model identifiers and
the categorical labels carried on result structures.

All enums inherit from both `str` and `Enum` so that Pydantic models serialize
them as plain strings and accept either the enum member or its string value.

Exhaustiveness:
    Every lookup table keyed by Channel or Stage in this module is checked at
    import time. Adding a channel without registering its family and display
    name raises immediately instead of producing silently missing credit later.
"""

from enum import Enum
from typing import Dict, List, Tuple


class Channel(str, Enum):
    """
    Marketing channel a touchpoint was recorded on.

    The first four members are the base (coarse) channel set used by simple
    CRM exports. The remaining members are the enriched set produced when
    touchpoints carry activity level detail.
    """
    # Base channel set
    LINKEDIN = "linkedin"
    EMAIL = "email"
    FORM = "form"
    EVENTS = "events"
    # Enriched channel set
    LINKEDIN_ADS = "linkedin_ads"
    ORGANIC_SOCIAL = "organic_social"
    EMAIL_NURTURE = "email_nurture"
    EMAIL_NEWSLETTER = "email_newsletter"
    WEB_VISIT = "web_visit"
    FORM_SUBMISSION = "form_submission"
    EVENT = "event"
    WEBINAR = "webinar"
    BDR_EMAIL = "bdr_email"
    BDR_CALL = "bdr_call"
    BDR_LINKEDIN = "bdr_linkedin"
    CONTENT_DOWNLOAD = "content_download"


class ChannelFamily(str, Enum):
    """
    Coarse grouping of channels used by scoring heuristics.

    - paid_social: Paid social advertising
    - organic: Unpaid social presence
    - email: Marketing email programs
    - web: Website visits
    - form: Form fills and inbound requests
    - event: In-person and virtual events
    - outbound: BDR/SDR human outreach
    - content: Gated content downloads
    """
    PAID_SOCIAL = "paid_social"
    ORGANIC = "organic"
    EMAIL = "email"
    WEB = "web"
    FORM = "form"
    EVENT = "event"
    OUTBOUND = "outbound"
    CONTENT = "content"


class Stage(str, Enum):
    """
    Opportunity pipeline stage.

    Stages progress disco_set -> disco_completed -> solution_accepted ->
    eval_planning -> negotiation and end in exactly one terminal state,
    closed_won or closed_lost. A lost deal can exit from any stage.
    """
    DISCO_SET = "disco_set"
    DISCO_COMPLETED = "disco_completed"
    SOLUTION_ACCEPTED = "solution_accepted"
    EVAL_PLANNING = "eval_planning"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed_won"
    CLOSED_LOST = "closed_lost"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.CLOSED_WON, Stage.CLOSED_LOST)

    @property
    def is_open(self) -> bool:
        return not self.is_terminal

    @property
    def pipeline_index(self) -> int:
        """Position in PIPELINE_STAGES, -1 for closed_lost."""
        if self is Stage.CLOSED_LOST:
            return -1
        return PIPELINE_STAGES.index(self)


class AttributionModel(str, Enum):
    """
    Attribution weighting model identifiers.

    - first_touch / last_touch: Single-touch models
    - linear: Equal weight per touch
    - time_decay: Exponential half-life weighting toward the last touch
    - position_based: 40/40/20 U-shaped weighting
    - w_shaped: 30/30/30/10 weighting around journey milestones
    - markov: Data-driven removal-effect model
    """
    FIRST_TOUCH = "first_touch"
    LAST_TOUCH = "last_touch"
    LINEAR = "linear"
    TIME_DECAY = "time_decay"
    POSITION_BASED = "position_based"
    W_SHAPED = "w_shaped"
    MARKOV = "markov"


class Confidence(str, Enum):
    """Data sufficiency level attached to a derived score or statistic."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Trend(str, Enum):
    """Direction of recent touch velocity compared with the prior window."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class Severity(str, Enum):
    """
    Risk factor severity.

    Risk factors on a DealScore are ordered by `rank` (high first).
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}[self]


class ForecastCategory(str, Enum):
    """
    Forecast tier assigned to an open deal from its marketing score.

    LOST is never assigned by the forecast itself; it only appears as the
    target category of a scenario that drops deals from the forecast.
    """
    COMMIT = "commit"
    BEST_CASE = "best_case"
    PIPELINE = "pipeline"
    AT_RISK = "at_risk"
    LOST = "lost"


class Momentum(str, Enum):
    """Direction of a channel's attributed share across reporting periods."""
    RISING = "rising"
    STABLE = "stable"
    DECLINING = "declining"


class SignalConfidence(str, Enum):
    """Chi-squared confidence bucket for a win/loss signal."""
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"


class DescriptorType(str, Enum):
    """Kind of touchpoint attribute a win/loss signal was derived from."""
    CAMPAIGN = "campaign"
    CONTENT = "content"
    PAGE = "page"
    CHANNEL = "channel"
    ACTIVITY = "activity"


class AssetType(str, Enum):
    """Content format inferred from an asset name or page URL."""
    WHITEPAPER = "whitepaper"
    DATASHEET = "datasheet"
    CASE_STUDY = "case_study"
    WEBINAR_RECORDING = "webinar_recording"
    GUIDE = "guide"
    ROI_CALCULATOR = "roi_calculator"
    INFOGRAPHIC = "infographic"
    VIDEO = "video"


class ContentGapType(str, Enum):
    """
    Kind of content gap found at a pipeline stage.

    - low_density: few content interactions relative to the busiest stage
    - missing_asset_type: several of the formats suited to the stage unused
    """
    LOW_DENSITY = "low_density"
    MISSING_ASSET_TYPE = "missing_asset_type"


class GapSeverity(str, Enum):
    """Content gap severity, ordered by `rank` (critical first)."""
    CRITICAL = "critical"
    MODERATE = "moderate"
    MINOR = "minor"

    @property
    def rank(self) -> int:
        return {GapSeverity.CRITICAL: 0, GapSeverity.MODERATE: 1, GapSeverity.MINOR: 2}[self]


# =============================================================================
# Ordered stage lists
# =============================================================================

# Stage progression order. closed_lost is terminal from any stage and is
# therefore not part of the ordered pipeline.
PIPELINE_STAGES: List[Stage] = [
    Stage.DISCO_SET,
    Stage.DISCO_COMPLETED,
    Stage.SOLUTION_ACCEPTED,
    Stage.EVAL_PLANNING,
    Stage.NEGOTIATION,
    Stage.CLOSED_WON,
]

OPEN_STAGES: List[Stage] = [s for s in Stage if s.is_open]

STAGE_LABELS: Dict[Stage, str] = {
    Stage.DISCO_SET: "Discos Set",
    Stage.DISCO_COMPLETED: "Discos Completed",
    Stage.SOLUTION_ACCEPTED: "Solution Accepted",
    Stage.EVAL_PLANNING: "Evaluation Planning",
    Stage.NEGOTIATION: "Negotiation",
    Stage.CLOSED_WON: "Closed Won",
    Stage.CLOSED_LOST: "Closed Lost",
}


# =============================================================================
# Channel lookup tables
# =============================================================================

CHANNEL_FAMILIES: Dict[Channel, ChannelFamily] = {
    Channel.LINKEDIN: ChannelFamily.PAID_SOCIAL,
    Channel.EMAIL: ChannelFamily.EMAIL,
    Channel.FORM: ChannelFamily.FORM,
    Channel.EVENTS: ChannelFamily.EVENT,
    Channel.LINKEDIN_ADS: ChannelFamily.PAID_SOCIAL,
    Channel.ORGANIC_SOCIAL: ChannelFamily.ORGANIC,
    Channel.EMAIL_NURTURE: ChannelFamily.EMAIL,
    Channel.EMAIL_NEWSLETTER: ChannelFamily.EMAIL,
    Channel.WEB_VISIT: ChannelFamily.WEB,
    Channel.FORM_SUBMISSION: ChannelFamily.FORM,
    Channel.EVENT: ChannelFamily.EVENT,
    Channel.WEBINAR: ChannelFamily.EVENT,
    Channel.BDR_EMAIL: ChannelFamily.OUTBOUND,
    Channel.BDR_CALL: ChannelFamily.OUTBOUND,
    Channel.BDR_LINKEDIN: ChannelFamily.OUTBOUND,
    Channel.CONTENT_DOWNLOAD: ChannelFamily.CONTENT,
}

CHANNEL_LABELS: Dict[Channel, str] = {
    Channel.LINKEDIN: "LinkedIn",
    Channel.EMAIL: "Email",
    Channel.FORM: "Form",
    Channel.EVENTS: "Events",
    Channel.LINKEDIN_ADS: "LinkedIn Ads",
    Channel.ORGANIC_SOCIAL: "Organic Social",
    Channel.EMAIL_NURTURE: "Email Nurture",
    Channel.EMAIL_NEWSLETTER: "Email Newsletter",
    Channel.WEB_VISIT: "Web Visit",
    Channel.FORM_SUBMISSION: "Form Submission",
    Channel.EVENT: "Event",
    Channel.WEBINAR: "Webinar",
    Channel.BDR_EMAIL: "BDR Email",
    Channel.BDR_CALL: "BDR Call",
    Channel.BDR_LINKEDIN: "BDR LinkedIn",
    Channel.CONTENT_DOWNLOAD: "Content Download",
}


def channel_order(channel: Channel) -> int:
    """Sort key placing channels in declaration order."""
    return _CHANNEL_POSITION[channel]


def channels_in_family(family: ChannelFamily) -> Tuple[Channel, ...]:
    return tuple(ch for ch in Channel if CHANNEL_FAMILIES[ch] is family)


def _check_exhaustive(table: Dict, members: type, name: str) -> None:
    missing = [m.value for m in members if m not in table]
    if missing:
        raise RuntimeError(f"{name} is missing entries for: {', '.join(missing)}")


_CHANNEL_POSITION: Dict[Channel, int] = {ch: i for i, ch in enumerate(Channel)}

_check_exhaustive(CHANNEL_FAMILIES, Channel, "CHANNEL_FAMILIES")
_check_exhaustive(CHANNEL_LABELS, Channel, "CHANNEL_LABELS")
_check_exhaustive(STAGE_LABELS, Stage, "STAGE_LABELS")
