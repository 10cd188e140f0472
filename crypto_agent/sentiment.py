import asyncio
import random
import re
import time
from datetime import timedelta
from typing import List, Optional
import structlog

from .config import settings
from .error_handling import ValidationError
from .models import (
    SocialPost, SentimentScore, SentimentSummary, SentimentBreakdown, KeyTopic,
    InfluentialPost, SentimentTrend, SentimentRecommendation, SentimentReport, utc_now
)

logger = structlog.get_logger()

POSITIVE_WORDS = frozenset({
    "bull", "bullish", "moon", "pump", "buy", "hodl", "diamond", "hands",
    "rocket", "green", "up", "rise", "gain", "profit", "win", "good", "great",
    "awesome", "amazing", "strong", "solid", "love", "like", "optimistic",
    "confident", "breakthrough", "surge", "rally", "boom",
})

NEGATIVE_WORDS = frozenset({
    "bear", "bearish", "dump", "sell", "crash", "drop", "fall", "red", "down",
    "loss", "lose", "bad", "terrible", "awful", "weak", "fear", "panic",
    "worried", "concerned", "doubt", "skeptical", "disappointed", "frustrated",
    "collapse", "plummet", "disaster", "bubble", "scam", "rug",
})

TOPIC_WORDS = ("price", "moon", "dip", "buy", "sell", "hodl", "bull", "bear", "pump", "dump")

TIMEFRAME_HOURS = {"1h": 1, "6h": 6, "24h": 24, "7d": 168}

MIN_POSTS = 10
MAX_POSTS = 100

WORD_PATTERN = re.compile(r"[a-z0-9']+")

def sentiment_label(score: float) -> str:
    if score > 0.3:
        return "Very Positive"
    elif score > 0.1:
        return "Positive"
    elif score < -0.3:
        return "Very Negative"
    elif score < -0.1:
        return "Negative"
    return "Neutral"

def score_text(text: str) -> SentimentScore:
    """Lexicon score in [-1, 1], normalized per ten words"""
    words = WORD_PATTERN.findall(text.lower())
    raw = sum(1 for w in words if w in POSITIVE_WORDS) - sum(1 for w in words if w in NEGATIVE_WORDS)
    normalized = max(-1.0, min(1.0, raw / max(len(words) / 10, 1)))
    return SentimentScore(score=round(normalized, 3), label=sentiment_label(normalized))

class SampleSocialFeed:
    """Demo post source; no social network API is wired in"""

    TEMPLATES = (
        "${symbol} is looking bullish today! Great momentum",
        "Just bought more ${symbol}. Diamond hands!",
        "${symbol} dumping hard... not looking good",
        "Love the technology behind ${symbol}. Long term holder",
        "${symbol} to the moon! Best investment ever",
        "Worried about ${symbol} recent performance. Might sell soon",
        "${symbol} showing strong support levels. Time to buy the dip!",
        "Market crash affecting ${symbol} badly. Bear market confirmed",
        "${symbol} partnership announcement huge! This is amazing news",
        "${symbol} overvalued in my opinion. Bubble territory",
        "HODL ${symbol} no matter what! Strong fundamentals",
        "${symbol} technical analysis looking very promising",
        "Sold all my ${symbol}. Too much volatility for me",
        "${symbol} community is the best! Great project",
        "${symbol} regulations coming. Might be risky",
    )

    def __init__(self, seed: Optional[int] = None):
        self.rng = random.Random(seed)

    async def fetch_posts(self, token_symbol: str, timeframe_hours: int, max_posts: int) -> List[SocialPost]:
        symbol = token_symbol.upper()
        now = utc_now()
        templates = self.rng.sample(self.TEMPLATES, k=min(max_posts, len(self.TEMPLATES)))
        return [
            SocialPost(
                id=f"sample_{index}",
                text=template.replace("{symbol}", symbol),
                created_at=now - timedelta(seconds=self.rng.uniform(0, timeframe_hours * 3600)),
                author=f"CryptoUser{self.rng.randint(0, 999)}",
                like_count=self.rng.randint(0, 499),
                repost_count=self.rng.randint(0, 99),
                reply_count=self.rng.randint(0, 49)
            )
            for index, template in enumerate(templates)
        ]

class RateLimiter:
    """Spaces calls at least `min_interval` seconds apart"""

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def wait(self):
        async with self._lock:
            elapsed = time.monotonic() - self.last_call
            if self.last_call and elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self.last_call = time.monotonic()

def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0

class SentimentAnalyzer:
    def __init__(self, feed: Optional[SampleSocialFeed] = None, min_interval: Optional[float] = None):
        self.feed = feed or SampleSocialFeed()
        self.rate_limiter = RateLimiter(
            settings.SENTIMENT_MIN_INTERVAL_SECONDS if min_interval is None else min_interval
        )

    async def analyze(self, token_symbol: str, timeframe: str = "24h", max_posts: int = 50) -> SentimentReport:
        token_symbol = (token_symbol or "").strip().upper()
        if not token_symbol:
            raise ValidationError("Token symbol is required")
        if timeframe not in TIMEFRAME_HOURS:
            raise ValidationError(f"Timeframe must be one of {', '.join(TIMEFRAME_HOURS)}")
        if not MIN_POSTS <= max_posts <= MAX_POSTS:
            raise ValidationError(f"max_posts must be between {MIN_POSTS} and {MAX_POSTS}")

        await self.rate_limiter.wait()
        posts = await self.feed.fetch_posts(token_symbol, TIMEFRAME_HOURS[timeframe], max_posts)
        report = build_sentiment_report(token_symbol, timeframe, posts)

        logger.info("Sentiment analysis completed",
                    token=token_symbol,
                    posts=report.total_posts_analyzed,
                    sentiment=report.sentiment_summary.overall_sentiment)
        return report

def build_sentiment_report(token_symbol: str, timeframe: str, posts: List[SocialPost]) -> SentimentReport:
    if not posts:
        raise ValidationError(f"No social posts found for {token_symbol}")

    # Newest first so the first half is the recent half
    posts = sorted(posts, key=lambda p: p.created_at, reverse=True)
    scored = [(post, score_text(post.text)) for post in posts]
    total = len(scored)

    positive = sum(1 for _, s in scored if s.score > 0.1)
    negative = sum(1 for _, s in scored if s.score < -0.1)
    neutral = total - positive - negative
    average = _mean([s.score for _, s in scored])
    overall = sentiment_label(average)

    topics = []
    for topic in TOPIC_WORDS:
        matching = [s.score for post, s in scored if topic in post.text.lower()]
        if matching:
            topic_score = _mean(matching)
            topics.append(KeyTopic(
                topic=topic,
                frequency=len(matching),
                sentiment="Positive" if topic_score > 0.1 else "Negative" if topic_score < -0.1 else "Neutral"
            ))
    topics.sort(key=lambda t: t.frequency, reverse=True)

    influential = sorted(scored, key=lambda pair: pair[0].engagement, reverse=True)[:5]

    half = total // 2
    trend_diff = _mean([s.score for _, s in scored[:half]]) - _mean([s.score for _, s in scored[half:]])
    direction, strength = "Stable", "Weak"
    if abs(trend_diff) > 0.2:
        strength = "Strong"
        direction = "Improving" if trend_diff > 0 else "Declining"
    elif abs(trend_diff) > 0.1:
        strength = "Moderate"
        direction = "Improving" if trend_diff > 0 else "Declining"

    return SentimentReport(
        token_symbol=token_symbol,
        timeframe=timeframe,
        total_posts_analyzed=total,
        sentiment_summary=SentimentSummary(
            overall_sentiment=overall,
            sentiment_score=round(average, 3),
            confidence_level=round(min(1.0, total / 50), 3)
        ),
        sentiment_breakdown=SentimentBreakdown(
            positive_posts=positive,
            negative_posts=negative,
            neutral_posts=neutral,
            positive_percentage=round(positive / total * 100, 2),
            negative_percentage=round(negative / total * 100, 2),
            neutral_percentage=round(neutral / total * 100, 2)
        ),
        key_topics=topics[:5],
        influential_posts=[
            InfluentialPost(text=post.text, sentiment=s.label, engagement=post.engagement,
                            created_at=post.created_at)
            for post, s in influential
        ],
        sentiment_trend=SentimentTrend(
            trend_direction=direction,
            trend_strength=strength,
            description=f"{strength} {direction.lower()} sentiment (recent vs earlier posts: {trend_diff:+.3f})"
        ),
        recommendations=[sentiment_recommendation(overall, direction)]
    )

def sentiment_recommendation(overall: str, direction: str) -> SentimentRecommendation:
    if overall == "Very Positive" and direction == "Improving":
        return SentimentRecommendation(
            type="buy_signal", confidence="high",
            reasoning="Very positive sentiment with improving trend suggests strong buying opportunity"
        )
    if overall == "Positive":
        return SentimentRecommendation(
            type="hold", confidence="medium",
            reasoning="Positive sentiment indicates good holding opportunity"
        )
    if overall == "Very Negative" and direction == "Declining":
        return SentimentRecommendation(
            type="sell_signal", confidence="high",
            reasoning="Very negative sentiment with declining trend suggests potential sell signal"
        )
    return SentimentRecommendation(
        type="monitor", confidence="medium",
        reasoning="Mixed or neutral sentiment requires continued monitoring"
    )

# Global sentiment analyzer instance
sentiment_analyzer = SentimentAnalyzer()
