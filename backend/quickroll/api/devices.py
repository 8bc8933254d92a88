# File: backend/quickroll/api/devices.py
"""Device correlation reports for manual proxy-attendance review."""
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required
from quickroll import limiter
from quickroll.services.device_correlator import DeviceCorrelator
from quickroll.utils.decorators import faculty_required
from quickroll.utils.helpers import success_response, error_response

devices_bp = Blueprint('devices', __name__)

@devices_bp.route('/suspicious', methods=['GET'])
@jwt_required()
@faculty_required
@limiter.limit("20 per minute")
def suspicious_devices():
    """Fingerprints used by more than one identity in the window."""
    days = request.args.get('days', type=float, default=current_app.config.get('SUSPICIOUS_WINDOW_DAYS', 1))
    if days <= 0:
        return error_response("days must be positive", 400)

    findings = DeviceCorrelator.find_suspicious(window_days=days)
    return success_response(
        data={'devices': findings, 'count': len(findings), 'windowDays': days},
        message=f'{len(findings)} suspicious device(s)'
    )

@devices_bp.route('/frequent-logins', methods=['GET'])
@jwt_required()
@faculty_required
@limiter.limit("20 per minute")
def frequent_logins():
    """Identities logging in from one device more often than the threshold."""
    threshold = request.args.get(
        'threshold', type=int, default=current_app.config.get('FREQUENT_LOGIN_THRESHOLD', 3)
    )
    hours = request.args.get('hours', type=int, default=24)
    if threshold < 1 or hours < 1:
        return error_response("threshold and hours must be positive", 400)

    logins = DeviceCorrelator.frequent_logins(
        organization_unit=request.args.get('department'),
        threshold=threshold,
        hours=hours
    )
    return success_response(data={'logins': logins, 'count': len(logins)})
