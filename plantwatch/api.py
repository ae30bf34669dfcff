"""HTTP API for the PlantWatch analytics service."""

import threading
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from .analytics_service import AnalyticsService
from .cache import CacheLayer, CacheStats, Domain, build_cache_layer
from .config import settings
from .data_sources import build_record_source
from .domain import (
    BreakdownPriority,
    BreakdownReport,
    BreakdownStatus,
    DashboardAnalytics,
    Equipment,
    EquipmentScore,
    EquipmentState,
    EquipmentStatusRecord,
    FleetMetrics,
    Granularity,
    MaintenanceSchedule,
    MaintenanceStatus,
    MaintenanceType,
    RealtimeSnapshot,
    RepairReport,
    RepairStatus,
    StatisticsCategory,
    StatisticsPeriod,
    StatisticsReport,
    TrendSeries,
)
from .errors import ComputationFailed, EquipmentNotFound, InvalidArgument
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__)

router = APIRouter()

_service: AnalyticsService | None = None
_service_lock = threading.Lock()


def get_analytics_service() -> AnalyticsService:
    """Return the process-wide service, building cache and record source on first use."""
    global _service
    with _service_lock:
        if _service is None:
            logger.info("Building analytics service (record_source=%s)", settings.record_source)
            _service = AnalyticsService(build_cache_layer(settings), build_record_source(settings), settings)
        return _service


def shutdown_analytics_service() -> None:
    """Stop the cache sweeper and forget the service; a later request rebuilds it."""
    global _service
    with _service_lock:
        service, _service = _service, None
    if service is not None:
        service.cache.close()


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EquipmentCreate(BaseModel):
    """Incoming equipment registration."""
    id: Optional[str] = None
    equipment_number: str
    equipment_name: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None


class StatusChange(BaseModel):
    status: EquipmentState
    status_changed_at: Optional[datetime] = None


class BreakdownCreate(BaseModel):
    """Incoming breakdown report."""
    equipment_id: str
    occurred_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    priority: BreakdownPriority = BreakdownPriority.MEDIUM
    status: BreakdownStatus = BreakdownStatus.PENDING


class RepairCreate(BaseModel):
    """Incoming repair report."""
    equipment_id: str
    breakdown_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: RepairStatus = RepairStatus.SCHEDULED


class MaintenanceCreate(BaseModel):
    equipment_id: str
    scheduled_date: datetime
    completed_date: Optional[datetime] = None
    status: MaintenanceStatus = MaintenanceStatus.SCHEDULED
    type: MaintenanceType = MaintenanceType.PREVENTIVE


class CacheInvalidateRequest(BaseModel):
    """Exactly one of domain, key or pattern."""
    domain: Optional[Domain] = None
    key: Optional[str] = None
    pattern: Optional[str] = None


class CacheInvalidateResponse(BaseModel):
    removed: int


def _load(view, *args, **kwargs):
    """Run a cached view, mapping cache errors onto HTTP errors."""
    try:
        return view(*args, **kwargs)
    except ComputationFailed as exc:
        if isinstance(exc.cause, EquipmentNotFound):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc.cause))
        logger.error("Failed to load metrics for %s: %s", exc.key, exc.cause)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Failed to load metrics")
    except InvalidArgument as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


# ---------------------------------------------------------------------------
# Analytics views
# ---------------------------------------------------------------------------

@router.get("/analytics/dashboard", response_model=DashboardAnalytics)
def get_dashboard(service: AnalyticsService = Depends(get_analytics_service)):
    """Full dashboard bundle: daily stats, trend, fleet metrics, scores."""
    return _load(service.dashboard_analytics)


@router.get("/analytics/realtime", response_model=RealtimeSnapshot)
def get_realtime(service: AnalyticsService = Depends(get_analytics_service)):
    return _load(service.realtime_data)


@router.post("/analytics/realtime/refresh", response_model=RealtimeSnapshot)
def refresh_realtime(service: AnalyticsService = Depends(get_analytics_service)):
    """Drop the cached realtime view and return a freshly computed one."""
    return _load(service.refresh_realtime)


@router.get("/analytics/trend-data", response_model=TrendSeries)
def get_trend_data(
    period: Granularity = Query(default=Granularity.MONTHLY),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Breakdown and repair counts bucketed by period."""
    return _load(service.trend_data, period)


@router.get("/analytics/performance-metrics", response_model=FleetMetrics)
def get_performance_metrics(service: AnalyticsService = Depends(get_analytics_service)):
    """Fleet MTBF, MTTR and completion rate."""
    return _load(service.performance_metrics)


@router.get("/analytics/statistics", response_model=StatisticsReport)
def get_statistics(
    period: StatisticsPeriod = Query(default=StatisticsPeriod.MONTHLY),
    category: StatisticsCategory = Query(default=StatisticsCategory.PERFORMANCE),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Performance, maintenance or comprehensive statistics for the analysis page."""
    return _load(service.statistics, category, period)


@router.get("/equipment/{equipment_id}/score", response_model=EquipmentScore)
def get_equipment_score(equipment_id: str, service: AnalyticsService = Depends(get_analytics_service)):
    return _load(service.equipment_score, equipment_id)


# ---------------------------------------------------------------------------
# Mutations (write through, then invalidate related views)
# ---------------------------------------------------------------------------

def _save(write, record):
    try:
        return write(record)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


@router.post("/equipment", response_model=Equipment, status_code=status.HTTP_201_CREATED)
def create_equipment(req: EquipmentCreate, service: AnalyticsService = Depends(get_analytics_service)):
    """Register a machine."""
    data = req.model_dump()
    data["id"] = data["id"] or _new_id()
    return _save(service.add_equipment, Equipment(**data))


@router.post("/equipment/{equipment_id}/status", response_model=EquipmentStatusRecord,
             status_code=status.HTTP_201_CREATED)
def change_equipment_status(equipment_id: str, req: StatusChange,
                            service: AnalyticsService = Depends(get_analytics_service)):
    """Record a status change for a machine."""
    now = _utcnow()
    record = EquipmentStatusRecord(
        id=_new_id(),
        equipment_id=equipment_id,
        status=req.status,
        status_changed_at=req.status_changed_at or now,
        updated_at=now,
    )
    return _save(service.add_status, record)


@router.post("/breakdown-reports", response_model=BreakdownReport, status_code=status.HTTP_201_CREATED)
def create_breakdown_report(req: BreakdownCreate, service: AnalyticsService = Depends(get_analytics_service)):
    now = _utcnow()
    data = req.model_dump()
    data["occurred_at"] = data["occurred_at"] or now
    return _save(service.add_breakdown, BreakdownReport(id=_new_id(), created_at=now, **data))


@router.post("/repair-reports", response_model=RepairReport, status_code=status.HTTP_201_CREATED)
def create_repair_report(req: RepairCreate, service: AnalyticsService = Depends(get_analytics_service)):
    return _save(service.add_repair, RepairReport(id=_new_id(), created_at=_utcnow(), **req.model_dump()))


@router.post("/maintenance-schedules", response_model=MaintenanceSchedule, status_code=status.HTTP_201_CREATED)
def create_maintenance_schedule(req: MaintenanceCreate, service: AnalyticsService = Depends(get_analytics_service)):
    return _save(service.add_maintenance, MaintenanceSchedule(id=_new_id(), **req.model_dump()))


# ---------------------------------------------------------------------------
# Cache administration
# ---------------------------------------------------------------------------

@router.get("/cache/stats", response_model=CacheStats)
def get_cache_stats(service: AnalyticsService = Depends(get_analytics_service)):
    return service.cache.get_stats()


@router.post("/cache/invalidate", response_model=CacheInvalidateResponse)
def invalidate_cache(req: CacheInvalidateRequest, service: AnalyticsService = Depends(get_analytics_service)):
    """Invalidate by domain fan-out, a single key, or a full-match key pattern."""
    targets = [v for v in (req.domain, req.key, req.pattern) if v is not None]
    if len(targets) != 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail="Provide exactly one of domain, key or pattern")
    cache: CacheLayer = service.cache
    try:
        if req.domain is not None:
            removed = service.record_change(req.domain)
        elif req.key is not None:
            removed = int(cache.invalidate(req.key))
        else:
            removed = cache.invalidate_pattern(req.pattern)
    except InvalidArgument as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return CacheInvalidateResponse(removed=removed)
