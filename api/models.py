"""
API request and response models for Hacka-Fi REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in hackathons/models.py
and auth/models.py, which own the internal domain representation. Route
handlers map between the two.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.

Some limits are deliberately NOT enforced here. Vote score range and comment
length are checked by core.voting so they fail with their own error codes
(INVALID_SCORE_RANGE, COMMENT_TOO_LONG) instead of a generic 422.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import UserProfile
from core.achievements import BY_KEY, AchievementProgress
from core.models import ADDRESS_PATTERN, HackathonStatus
from hackathons.models import Achievement, AuditEntry, Hackathon, Judge, Participant, Vote

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

WEI_PATTERN = r"^\d{1,78}$"
URL_PATTERN = r"^https?://\S+$"
USERNAME_PATTERN = r"^[A-Za-z0-9_]{3,30}$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SortByEnum(str, Enum):
    created_at = "created_at"
    registration_deadline = "registration_deadline"
    submission_deadline = "submission_deadline"
    voting_deadline = "voting_deadline"
    title = "title"


class SortOrderEnum(str, Enum):
    asc = "asc"
    desc = "desc"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health.

    components maps each dependency to "ok", "error", or "disabled".
    status is "ok" only when no component reports "error".
    """

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
    chain_id: Optional[int] = None
    block_number: Optional[int] = None


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class NonceRequest(BaseModel):
    """Request body for POST /api/v1/auth/nonce."""

    model_config = ConfigDict(str_strip_whitespace=True)

    address: str = Field(pattern=ADDRESS_PATTERN)


class NonceResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    nonce: str
    message: str
    expires_in: int


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    message must be the exact text returned by /auth/nonce; signature is the
    0x-prefixed 65-byte personal_sign output.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    address: str = Field(pattern=ADDRESS_PATTERN)
    message: str = Field(min_length=1, max_length=2000)
    signature: str = Field(pattern=r"^0x[0-9a-fA-F]{130}$")


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    address: str
    role: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    role: str
    username: Optional[str] = None


class VerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool
    address: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/me. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(default=None, pattern=USERNAME_PATTERN)
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar_url: Optional[str] = Field(default=None, max_length=2048, pattern=URL_PATTERN)


class UserProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    wallet_address: str
    username: Optional[str]
    bio: Optional[str]
    avatar_url: Optional[str]
    created_at: Optional[str]
    last_login: Optional[str]

    @classmethod
    def from_domain(cls, profile: UserProfile) -> "UserProfileResponse":
        return cls(
            wallet_address=profile.wallet_address,
            username=profile.username,
            bio=profile.bio,
            avatar_url=profile.avatar_url,
            created_at=profile.created_at,
            last_login=profile.last_login,
        )


class ParticipationHistoryRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    hackathon_id: int
    title: str
    status: str
    submission_url: Optional[str]
    rank: Optional[int]
    prize_amount: Optional[str]
    registered_at: str


class UserDetailResponse(BaseModel):
    """Response for GET /api/v1/users/{address}.

    counts keys: participated, won, judged, organized.
    """

    model_config = ConfigDict(frozen=True)

    profile: UserProfileResponse
    counts: dict[str, int]
    history: list[ParticipationHistoryRow]


class LeaderboardRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    wallet_address: str
    username: Optional[str] = None
    wins: int
    podiums: int
    participations: int
    total_prize: str  # wei, integer string


# ---------------------------------------------------------------------------
# Hackathons -- requests
# ---------------------------------------------------------------------------


class HackathonCreate(BaseModel):
    """Request body for POST /api/v1/hackathons.

    Deadlines without an offset are read as UTC. Ordering
    (now < registration <= submission <= voting) is checked by the route so
    the error names the offending deadline.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=10000)
    registration_deadline: datetime
    submission_deadline: datetime
    voting_deadline: datetime
    prize_amount: Optional[str] = Field(default=None, pattern=WEI_PATTERN)
    entry_fee: Optional[str] = Field(default=None, pattern=WEI_PATTERN)
    max_participants: Optional[int] = Field(default=None, ge=1, le=100000)
    cover_image_url: Optional[str] = Field(default=None, max_length=2048, pattern=URL_PATTERN)
    contract_address: Optional[str] = Field(default=None, pattern=ADDRESS_PATTERN)

    @field_validator("contract_address")
    @classmethod
    def lowercase_contract(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class HackathonUpdate(BaseModel):
    """Request body for PATCH /api/v1/hackathons/{id}. Omitted fields are left unchanged.

    A status here is a manual transition and goes through the same table as
    POST /hackathons/{id}/status.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1, max_length=10000)
    registration_deadline: Optional[datetime] = None
    submission_deadline: Optional[datetime] = None
    voting_deadline: Optional[datetime] = None
    status: Optional[HackathonStatus] = None
    prize_amount: Optional[str] = Field(default=None, pattern=WEI_PATTERN)
    entry_fee: Optional[str] = Field(default=None, pattern=WEI_PATTERN)
    max_participants: Optional[int] = Field(default=None, ge=1, le=100000)
    cover_image_url: Optional[str] = Field(default=None, max_length=2048, pattern=URL_PATTERN)
    contract_address: Optional[str] = Field(default=None, pattern=ADDRESS_PATTERN)


class StatusChangeRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: HackathonStatus
    reason: Optional[str] = Field(default=None, max_length=500)


class ParticipateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    submission_url: Optional[str] = Field(default=None, max_length=2048, pattern=URL_PATTERN)
    entry_fee: Optional[str] = Field(default=None, pattern=WEI_PATTERN)


class SubmitRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    submission_url: str = Field(max_length=2048, pattern=URL_PATTERN)


class JudgeAddRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    judge_address: str = Field(pattern=ADDRESS_PATTERN)


class VoteRequest(BaseModel):
    """Request body for POST /api/v1/hackathons/{id}/votes.

    score and comment are range-checked by core.voting, not here.
    """

    participant_id: int
    score: int
    comment: Optional[str] = None


# ---------------------------------------------------------------------------
# Hackathons -- responses
# ---------------------------------------------------------------------------


class ParticipantResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    hackathon_id: int
    wallet_address: str
    submission_url: Optional[str]
    entry_fee: Optional[str]
    rank: Optional[int]
    prize_amount: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, p: Participant) -> "ParticipantResponse":
        return cls(
            id=p.id,
            hackathon_id=p.hackathon_id,
            wallet_address=p.wallet_address,
            submission_url=p.submission_url,
            entry_fee=p.entry_fee,
            rank=p.rank,
            prize_amount=p.prize_amount,
            created_at=p.created_at,
            updated_at=p.updated_at,
        )


class HackathonResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    description: str
    organizer_address: str
    registration_deadline: str
    submission_deadline: str
    voting_deadline: str
    status: HackathonStatus
    prize_amount: Optional[str]
    entry_fee: Optional[str]
    max_participants: Optional[int]
    cover_image_url: Optional[str]
    contract_address: Optional[str]
    created_at: str
    updated_at: str
    participant_count: Optional[int] = None
    participants: Optional[list[ParticipantResponse]] = None

    @classmethod
    def from_domain(
        cls,
        h: Hackathon,
        participant_count: Optional[int] = None,
        participants: Optional[list[Participant]] = None,
    ) -> "HackathonResponse":
        """Factory Method -- the mapping lives next to the output model, not in every route."""
        return cls(
            id=h.id,
            title=h.title,
            description=h.description,
            organizer_address=h.organizer_address,
            registration_deadline=h.registration_deadline,
            submission_deadline=h.submission_deadline,
            voting_deadline=h.voting_deadline,
            status=HackathonStatus(h.status),
            prize_amount=h.prize_amount,
            entry_fee=h.entry_fee,
            max_participants=h.max_participants,
            cover_image_url=h.cover_image_url,
            contract_address=h.contract_address,
            created_at=h.created_at,
            updated_at=h.updated_at,
            participant_count=participant_count,
            participants=[ParticipantResponse.from_domain(p) for p in participants] if participants is not None else None,
        )


class HackathonListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[HackathonResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class ActionsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    hackathon_id: int
    status: HackathonStatus
    allowed_actions: list[str]
    next_statuses: list[HackathonStatus]
    checked_at: str


class JudgeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    hackathon_id: int
    judge_address: str
    added_by: str
    added_at: str

    @classmethod
    def from_domain(cls, j: Judge) -> "JudgeResponse":
        return cls(
            id=j.id,
            hackathon_id=j.hackathon_id,
            judge_address=j.judge_address,
            added_by=j.added_by,
            added_at=j.added_at,
        )


class VoteResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    hackathon_id: int
    judge_address: str
    participant_id: int
    score: int
    comment: Optional[str]
    created_at: str
    updated_at: str
    updated: bool = False  # True when an existing vote was replaced

    @classmethod
    def from_domain(cls, v: Vote, updated: bool = False) -> "VoteResponse":
        return cls(
            id=v.id,
            hackathon_id=v.hackathon_id,
            judge_address=v.judge_address,
            participant_id=v.participant_id,
            score=v.score,
            comment=v.comment,
            created_at=v.created_at,
            updated_at=v.updated_at,
            updated=updated,
        )


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    hackathon_id: int
    action: str
    from_status: str
    to_status: str
    reason: Optional[str]
    triggered_by: str
    user_address: Optional[str]
    metadata: dict
    ip_address: Optional[str]
    user_agent: Optional[str]
    timestamp: str

    @classmethod
    def from_domain(cls, a: AuditEntry) -> "AuditEntryResponse":
        return cls(
            id=a.id,
            hackathon_id=a.hackathon_id,
            action=a.action,
            from_status=a.from_status,
            to_status=a.to_status,
            reason=a.reason,
            triggered_by=a.triggered_by,
            user_address=a.user_address,
            metadata=a.metadata,
            ip_address=a.ip_address,
            user_agent=a.user_agent,
            timestamp=a.timestamp,
        )


class AuditListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: list[AuditEntryResponse]
    total: int
    limit: int
    offset: int


# ---------------------------------------------------------------------------
# Results and winners
# ---------------------------------------------------------------------------


class RankingRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    participant_id: int
    wallet_address: str
    submission_url: Optional[str]
    total_votes: int
    average_score: float
    weighted_score: float
    normalized_score: float
    consensus_score: float
    variance: float
    rank: int
    tier: str


class RankingMetricsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_participants: int
    total_judges: int
    average_participation: float
    score_min: float
    score_max: float
    score_mean: float
    score_median: float
    score_stddev: float


class ResultsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    hackathon_id: int
    status: HackathonStatus
    rankings: list[RankingRow]
    metrics: RankingMetricsResponse


class WinnerSlot(BaseModel):
    model_config = ConfigDict(frozen=True)

    position: int
    basis_points: int
    amount: str  # wei, integer string
    participant_id: Optional[int] = None
    wallet_address: Optional[str] = None
    weighted_score: Optional[float] = None


class WinnersResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    hackathon_id: int
    finalized: bool
    total_pool: str
    winners: list[WinnerSlot]


class Top3Response(BaseModel):
    model_config = ConfigDict(frozen=True)

    hackathon_id: int
    first_place: Optional[str] = None
    second_place: Optional[str] = None
    third_place: Optional[str] = None


# ---------------------------------------------------------------------------
# Judging dashboard
# ---------------------------------------------------------------------------


class VotingProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_participants: int
    completed_votes: int
    pending_votes: int
    completion_percentage: int


class AssignedHackathon(BaseModel):
    model_config = ConfigDict(frozen=True)

    hackathon: HackathonResponse
    progress: VotingProgress
    days_until_deadline: int
    is_overdue: bool
    priority: str  # "high" | "medium" | "low"


class AssignedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    hackathons: list[AssignedHackathon]
    total_assigned: int
    total_pending: int
    total_completed: int


class JudgeStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_votes: int
    hackathons_judged: int
    average_score: float
    votes_with_comments: int
    comment_percentage: int
    last_activity: Optional[str]
    score_distribution: dict[str, int]


class PreviewRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    participant: ParticipantResponse
    has_voted: bool
    current_score: Optional[int] = None
    current_comment: Optional[str] = None


class PreviewResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    hackathon: HackathonResponse
    participants: list[PreviewRow]
    voted_count: int


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class ActiveHackathonRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    status: HackathonStatus
    pending_transition: Optional[HackathonStatus] = None
    reason: Optional[str] = None


class StatusSummaryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    counts: dict[str, int]
    active: list[ActiveHackathonRow]
    checked_at: str


class StatusCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    processed: int
    updated: int
    transitions: list[dict]
    failed: list[int] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


class AchievementResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    category: str
    title: str
    description: str
    rarity: str
    hackathon_id: Optional[int]
    earned_at: str

    @classmethod
    def from_domain(cls, achievement: Achievement) -> "AchievementResponse":
        definition = BY_KEY[achievement.achievement_key]
        return cls(
            key=definition.key,
            category=definition.category.value,
            title=definition.title,
            description=definition.description,
            rarity=definition.rarity,
            hackathon_id=achievement.hackathon_id,
            earned_at=achievement.earned_at,
        )


class AchievementProgressRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    category: str
    title: str
    description: str
    rarity: str
    earned: bool
    earned_at: Optional[str]
    progress: int
    requirement: str
    current_value: int
    target_value: int

    @classmethod
    def from_domain(cls, row: AchievementProgress) -> "AchievementProgressRow":
        return cls(
            key=row.definition.key,
            category=row.definition.category.value,
            title=row.definition.title,
            description=row.definition.description,
            rarity=row.definition.rarity,
            earned=row.earned,
            earned_at=row.earned_at,
            progress=row.progress,
            requirement=row.requirement,
            current_value=row.current_value,
            target_value=row.target_value,
        )


class UserAchievementsResponse(BaseModel):
    """Response for GET /api/v1/achievements/user/{address} and /achievements/me.

    total is the catalogue size; progress is set only when requested.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    total: int
    earned: int
    achievements: list[AchievementResponse]
    progress: Optional[list[AchievementProgressRow]] = None


class ProgressSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    earned: int
    available: int
    in_progress: int
    completion_rate: int


class AchievementProgressResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    summary: ProgressSummary
    earned: list[AchievementProgressRow]
    in_progress: list[AchievementProgressRow]
    available: list[AchievementProgressRow]


class AchievementCheckRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_address: str = Field(pattern=ADDRESS_PATTERN)
    hackathon_id: Optional[int] = None


class AchievementCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_address: str
    hackathon_id: Optional[int]
    new_achievements: list[str]
    checked_at: str


class AchievementAwardRequest(BaseModel):
    """Request body for POST /api/v1/achievements/award. reason is logged, not stored."""

    model_config = ConfigDict(str_strip_whitespace=True)

    user_address: str = Field(pattern=ADDRESS_PATTERN)
    achievement_key: str = Field(min_length=1, max_length=64)
    hackathon_id: Optional[int] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class AchievementStatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_awarded: int
    users_with_achievements: int
    by_achievement: dict[str, int]


class AchievementLeaderboardRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int
    wallet_address: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    achievement_count: int


class AchievementLeaderboardResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    leaderboard: list[AchievementLeaderboardRow]


# ---------------------------------------------------------------------------
# Analytics
#
# Built from the hackathons.analytics dataclasses with model_validate();
# from_attributes lets nested dataclasses validate the same way.
# ---------------------------------------------------------------------------


class AnalyticsOverview(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    total_hackathons: int
    active_hackathons: int
    completed_hackathons: int
    total_participants: int
    total_judges: int
    total_prize_distributed: str  # wei, integer string
    average_participants_per_hackathon: float
    average_votes_per_hackathon: float
    last_updated: str


class TrendPoint(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    date: str
    value: int


class ParticipationTrends(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    total_participations: int
    registration_trends: list[TrendPoint]
    submission_trends: list[TrendPoint]
    completion_rate: float
    average_submission_hours: float


class ScoreBucket(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    score: int
    count: int
    percentage: float


class JudgeParticipationRow(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    judge_address: str
    judge_name: Optional[str]
    total_votes: int
    average_score: float
    hackathons_judged: int
    last_vote_date: str


class VotingStatistics(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    total_votes: int
    average_score: float
    score_distribution: list[ScoreBucket]
    judge_participation: list[JudgeParticipationRow]
    voting_completion: float


class WinnerCategory(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    rank: int
    count: int
    total_prize: str
    percentage: float


class PrizeDistribution(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    total_prize_pool: str
    total_distributed: str
    distribution_rate: float
    winners_by_rank: list[WinnerCategory]
    average_prize_per_winner: str


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    start: Optional[str]  # None for all_time
    end: str
    range: str


class AnalyticsReport(BaseModel):
    """Response for GET /api/v1/admin/analytics/overview."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    overview: AnalyticsOverview
    participation: ParticipationTrends
    voting: VotingStatistics
    prize_distribution: PrizeDistribution
    time_range: TimeRange


class ExportMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    exported_at: str
    date_range: str
    total_records: int


class ExportResponse(BaseModel):
    """JSON body for GET /api/v1/admin/analytics/export/{dataset}.

    Row keys follow hackathons.analytics.EXPORT_COLUMNS for the dataset.
    """

    model_config = ConfigDict(frozen=True)

    dataset: str
    rows: list[dict]
    metadata: ExportMetadata
