from fastapi import APIRouter, Depends, Query
from typing import Optional, List
import structlog

from .config import settings, SupportedChains
from .error_handling import error_collector
from .models import (
    Portfolio, RiskReport, AlertSetupRequest, AlertSetupResponse, AlertSummary,
    AlertStatusReport, NotificationsResponse, OperationResult, HealthResponse,
    SentimentReport
)
from .risk_engine import risk_calculator, RiskCalculator
from .price_alerts import alert_service, PriceAlertService
from .sentiment import sentiment_analyzer, SentimentAnalyzer
from . import __version__

logger = structlog.get_logger()

router = APIRouter(prefix="/api")

# Dependency getters; tests swap these through app.dependency_overrides
def get_risk_calculator() -> RiskCalculator:
    return risk_calculator

def get_alert_service() -> PriceAlertService:
    return alert_service

def get_sentiment_analyzer() -> SentimentAnalyzer:
    return sentiment_analyzer

@router.get("/health", response_model=HealthResponse)
async def health_check(service: PriceAlertService = Depends(get_alert_service)):
    """Liveness probe with alert monitor state"""
    alerts = await service.list_price_alerts()
    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.ENV,
        monitor_running=service.monitor.is_running,
        active_alerts=sum(1 for alert in alerts if not alert.triggered),
        error_summary=error_collector.get_error_summary(hours=1)
    )

@router.get("/portfolio", response_model=Portfolio)
async def get_portfolio(
    wallet: str = Query(..., description="Wallet address"),
    chain: str = Query(SupportedChains.ETHEREUM, description="ethereum, solana, polygon or bsc"),
    calculator: RiskCalculator = Depends(get_risk_calculator)
):
    """Value the holdings of a wallet"""
    return await calculator.calculate_portfolio(wallet, chain)

@router.get("/portfolio/risk", response_model=RiskReport)
async def get_portfolio_risk(
    wallet: str = Query(..., description="Wallet address"),
    chain: str = Query(SupportedChains.ETHEREUM, description="ethereum, solana, polygon or bsc"),
    confidence_level: float = Query(0.95, description="VaR confidence level, between 0 and 1"),
    calculator: RiskCalculator = Depends(get_risk_calculator)
):
    """Full risk report for a wallet"""
    return await calculator.analyze_portfolio_risk(wallet, chain, confidence_level)

@router.post("/alerts", response_model=AlertSetupResponse, status_code=201)
async def create_price_alert(
    request: AlertSetupRequest,
    service: PriceAlertService = Depends(get_alert_service)
):
    return await service.setup_price_alert(request)

@router.get("/alerts", response_model=List[AlertSummary])
async def list_price_alerts(service: PriceAlertService = Depends(get_alert_service)):
    return await service.list_price_alerts()

@router.get("/alerts/status", response_model=AlertStatusReport)
async def get_alert_status(
    alert_id: Optional[str] = Query(None, description="Limit the report to one alert"),
    detailed: bool = Query(False, description="Include prices and distances to thresholds"),
    service: PriceAlertService = Depends(get_alert_service)
):
    return await service.check_alert_status(alert_id, detailed)

@router.get("/alerts/notifications", response_model=NotificationsResponse)
async def get_alert_notifications(
    unacknowledged_only: bool = Query(False),
    service: PriceAlertService = Depends(get_alert_service)
):
    return await service.get_alert_notifications(unacknowledged_only)

@router.post("/alerts/notifications/{notification_id}/acknowledge", response_model=OperationResult)
async def acknowledge_notification(
    notification_id: str,
    service: PriceAlertService = Depends(get_alert_service)
):
    if await service.acknowledge_alert(notification_id):
        return OperationResult(success=True, message="Notification acknowledged successfully")
    return OperationResult(success=False, message=f"Notification with ID {notification_id} not found")

@router.delete("/alerts/{alert_id}", response_model=OperationResult)
async def remove_price_alert(
    alert_id: str,
    service: PriceAlertService = Depends(get_alert_service)
):
    if await service.remove_price_alert(alert_id):
        return OperationResult(success=True, message=f"Successfully removed price alert {alert_id}")
    return OperationResult(success=False, message=f"Alert with ID {alert_id} not found")

@router.get("/sentiment/{token_symbol}", response_model=SentimentReport)
async def get_token_sentiment(
    token_symbol: str,
    timeframe: str = Query("24h", description="1h, 6h, 24h or 7d"),
    max_posts: int = Query(50, description="Number of posts to analyze (10-100)"),
    analyzer: SentimentAnalyzer = Depends(get_sentiment_analyzer)
):
    return await analyzer.analyze(token_symbol, timeframe, max_posts)
