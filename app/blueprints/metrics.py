"""
Prometheus metrics blueprint.

Exposes /metrics with the checkout counters defined in app.metrics.
This endpoint should be restricted to internal network or monitoring systems only.
"""
from flask import Blueprint, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.metrics import registry

metrics_bp = Blueprint('metrics', __name__)


@metrics_bp.route('/metrics')
def metrics():
    """
    Prometheus metrics endpoint.

    SECURITY NOTE: not authenticated; restrict it by network/firewall rules.

    Returns:
        Response: Prometheus-formatted metrics in text/plain
    """
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
