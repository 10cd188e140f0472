from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional, List, Dict
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

# Holdings / pricing boundary models
class TokenBalance(BaseModel):
    """A wallet position before pricing"""
    symbol: str
    name: str
    amount: float = Field(ge=0)
    token_address: Optional[str] = None
    coingecko_id: Optional[str] = None

class PriceQuote(BaseModel):
    usd_price: float = Field(ge=0)
    usd_24h_change_pct: float = 0.0

# Portfolio models
class Holding(BaseModel):
    name: str
    symbol: str
    amount: float
    current_price: float
    value: float
    change_24h: float  # USD
    change_percentage_24h: float
    token_address: Optional[str] = None

class Portfolio(BaseModel):
    wallet_address: str
    blockchain: str
    total_value: float = 0.0
    total_change_24h: float = 0.0
    total_change_percentage_24h: float = 0.0
    holdings: List[Holding] = []

    @property
    def is_empty(self) -> bool:
        return not self.holdings or self.total_value <= 0

# Risk models
class RiskMetrics(BaseModel):
    annualized_volatility_pct: float = 0.0
    var_1d_usd: float = 0.0
    var_7d_usd: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown_pct: float = 0.0

class DiversificationMetrics(BaseModel):
    asset_count: int = 0
    herfindahl_index: float = 0.0
    effective_asset_count: float = 0.0
    diversification_ratio: float = 0.0

class ConcentrationRisk(BaseModel):
    top1_pct: float = 0.0
    top3_pct: float = 0.0
    top5_pct: float = 0.0
    level: str = "low"

class AssetAllocation(BaseModel):
    by_risk_level: Dict[str, float]  # always low / medium / high
    by_category: Dict[str, float]    # only categories above 0%
    weighted_expected_volatility: float = 0.0

class RiskRecommendation(BaseModel):
    type: str
    priority: str
    message: str
    suggested_action: str

class RiskReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    wallet_address: str
    blockchain: str
    analyzed_at: datetime = Field(default_factory=utc_now)
    confidence_level: float

    total_value: float
    asset_count: int
    portfolio: Portfolio

    risk_metrics: RiskMetrics
    diversification: DiversificationMetrics
    concentration: ConcentrationRisk
    allocation: AssetAllocation
    recommendations: List[RiskRecommendation]

    overall_risk_score: int = Field(ge=1, le=10)
    risk_level: str

# Price alert models
class PriceAlert(BaseModel):
    id: str
    symbol: str
    low_threshold: Optional[float] = None
    high_threshold: Optional[float] = None
    notify_email: Optional[str] = None
    current_price: Optional[float] = None
    created_at: datetime = Field(default_factory=utc_now)
    last_checked_at: Optional[datetime] = None
    triggered: bool = False
    triggered_at: Optional[datetime] = None

    @property
    def email_enabled(self) -> bool:
        return bool(self.notify_email)

class TriggeredAlertRecord(BaseModel):
    id: str
    alert_id: str
    symbol: str
    message: str
    trigger_price: float
    threshold_type: str
    threshold_value: float
    triggered_at: datetime
    email_sent: bool = False
    acknowledged: bool = False

class NotificationData(BaseModel):
    alert_id: str
    symbol: str
    current_price: float
    threshold_type: str
    threshold_value: float
    triggered_alert_id: str
    email_sent: bool

class Notification(BaseModel):
    id: str
    type: str = "alert"
    title: str
    message: str
    timestamp: datetime
    acknowledged: bool = False
    data: NotificationData

# API Request/Response Models
class AlertSetupRequest(BaseModel):
    symbol: str = Field(min_length=1, description="CoinGecko coin id, e.g. bitcoin")
    low_threshold: Optional[float] = Field(default=None, description="Alert when price falls to or below this value")
    high_threshold: Optional[float] = Field(default=None, description="Alert when price rises to or above this value")
    notify_email: Optional[str] = None

    @field_validator('symbol')
    @classmethod
    def normalize_symbol(cls, v):
        return v.strip().lower()

    @field_validator('notify_email')
    @classmethod
    def validate_email(cls, v):
        if v is not None and ("@" not in v or v.startswith("@") or v.endswith("@")):
            raise ValueError('Invalid email address')
        return v

class AlertSetupResponse(BaseModel):
    alert_id: str
    symbol: str
    low_threshold: Optional[float] = None
    high_threshold: Optional[float] = None
    current_price: float
    email_enabled: bool
    message: str

class AlertSummary(BaseModel):
    alert_id: str
    symbol: str
    low_threshold: Optional[float] = None
    high_threshold: Optional[float] = None
    current_price: Optional[float] = None
    created_at: datetime
    last_checked: Optional[datetime] = None
    triggered: bool
    triggered_at: Optional[datetime] = None
    email_enabled: bool

class MonitorStatus(BaseModel):
    is_running: bool
    check_interval_seconds: float
    last_check_time: Optional[datetime] = None
    errors_last_hour: int = 0

class AlertStatusSummary(BaseModel):
    total_alerts: int
    active_alerts: int
    triggered_alerts: int
    email_enabled_alerts: int

class AlertStatusEntry(BaseModel):
    alert_id: str
    symbol: str
    status: str
    low_threshold: Optional[float] = None
    high_threshold: Optional[float] = None
    current_price: Optional[float] = None
    price_distance_to_low: Optional[float] = None
    price_distance_to_high: Optional[float] = None
    created_at: datetime
    last_checked: Optional[datetime] = None
    email_enabled: bool
    time_since_creation: str

class AlertStatusReport(BaseModel):
    monitor_status: MonitorStatus
    alert_summary: AlertStatusSummary
    alerts: List[AlertStatusEntry]
    recent_triggers: List[TriggeredAlertRecord]

class NotificationsResponse(BaseModel):
    notifications: List[Notification]
    total_count: int
    unacknowledged_count: int

# Sentiment models
class SocialPost(BaseModel):
    id: str
    text: str
    created_at: datetime
    author: str
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0

    @property
    def engagement(self) -> int:
        return self.like_count + self.repost_count + self.reply_count

class SentimentScore(BaseModel):
    score: float
    label: str

class SentimentSummary(BaseModel):
    overall_sentiment: str
    sentiment_score: float
    confidence_level: float

class SentimentBreakdown(BaseModel):
    positive_posts: int
    negative_posts: int
    neutral_posts: int
    positive_percentage: float
    negative_percentage: float
    neutral_percentage: float

class KeyTopic(BaseModel):
    topic: str
    frequency: int
    sentiment: str

class InfluentialPost(BaseModel):
    text: str
    sentiment: str
    engagement: int
    created_at: datetime

class SentimentTrend(BaseModel):
    trend_direction: str
    trend_strength: str
    description: str

class SentimentRecommendation(BaseModel):
    type: str
    confidence: str
    reasoning: str

class SentimentReport(BaseModel):
    token_symbol: str
    timeframe: str
    total_posts_analyzed: int
    sentiment_summary: SentimentSummary
    sentiment_breakdown: SentimentBreakdown
    key_topics: List[KeyTopic]
    influential_posts: List[InfluentialPost]
    sentiment_trend: SentimentTrend
    recommendations: List[SentimentRecommendation]

class OperationResult(BaseModel):
    success: bool
    message: str

class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    monitor_running: bool
    active_alerts: int
    error_summary: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
