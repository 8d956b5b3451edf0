"""
Barangay Luna CertSys - Report Routes (admin)
PDF reports and the JSON analysis behind the dashboard charts.
"""
from flask import Blueprint, Response, request, jsonify, current_app
from reportlab.platypus.doctemplate import LayoutError

from certsys.api.utils.auth import admin_required
from certsys.api.utils.report_generator import (
    REPORT_KINDS,
    analyze_requests,
    build_report,
    completion_rate,
    fetch_report_requests,
    report_filename,
)
from certsys.api.utils.security import error_500
from certsys.api.utils.stores import get_store
from certsys.api.utils.time import parse_date
from certsys.api.utils.validators import ValidationError

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')


def _date_range():
    """(start, end) query args, validated as YYYY-MM-DD."""
    start = request.args.get('start_date') or None
    end = request.args.get('end_date') or None
    for field, value in (('start_date', start), ('end_date', end)):
        if value:
            try:
                parse_date(value)
            except ValueError:
                raise ValidationError(field, f'{field} must be in YYYY-MM-DD format')
    if start and end and start > end:
        raise ValidationError('end_date', 'end_date must not be before start_date')
    return start, end


@reports_bp.route('/summary-data', methods=['GET'])
@admin_required
def summary_data(current_user):
    start, end = _date_range()

    def fetch():
        report = analyze_requests(fetch_report_requests(start, end))
        report['completion_rate'] = completion_rate(report)
        return report

    report = get_store('reports', f"{start or '*'}:{end or '*'}", fetch).fetch()
    return jsonify({'start_date': start, 'end_date': end, 'report': report}), 200


@reports_bp.route('/<kind>', methods=['GET'])
@admin_required
def download_report(kind, current_user):
    if kind not in REPORT_KINDS:
        return jsonify({'error': f"Unknown report type: {kind}. Use one of: {', '.join(REPORT_KINDS)}"}), 404
    start, end = _date_range()

    try:
        pdf_bytes = build_report(kind, start, end)
    except LayoutError as e:
        return error_500('Failed to generate report', e)

    filename = report_filename(kind, start, end)
    current_app.logger.info(f"Admin {current_user.id} generated {kind} report ({len(pdf_bytes)} bytes)")
    return Response(
        pdf_bytes,
        mimetype='application/pdf',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )
