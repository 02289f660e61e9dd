"""Dashboard actions composing flows with the record store."""

from medireport.dashboard.service import DashboardService, patient_info

__all__ = ["DashboardService", "patient_info"]
