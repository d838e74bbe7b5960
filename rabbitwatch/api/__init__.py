"""
FastAPI alerting service.

Provides REST API for:
- GET /workspaces/{id}/servers/{id}/alerts - Active alerts for a server
- GET /workspaces/{id}/servers/{id}/alerts/resolved - Resolved alert history
- GET /workspaces/{id}/servers/{id}/health - Direct server health probe
- GET /workspaces/{id}/servers/{id}/cluster-health - Health roll-up of active alerts
- GET/PUT /workspaces/{id}/thresholds - Alert thresholds
- GET/PUT /workspaces/{id}/alert-settings - Notification settings
"""

from rabbitwatch.api.app import create_app

__all__ = ["create_app"]
