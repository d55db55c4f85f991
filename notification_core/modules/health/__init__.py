from .service import HealthAggregator, SystemStatus, compute_health_score, health_label

__all__ = ["HealthAggregator", "SystemStatus", "compute_health_score", "health_label"]
