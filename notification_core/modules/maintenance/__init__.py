from .service import MaintenanceReport, MaintenanceRunner

__all__ = ["MaintenanceReport", "MaintenanceRunner"]
