"""
Flask route handlers for the REST API.
"""

import os
import sys
import traceback

from flask import jsonify, request
from sqlalchemy import text

from medconnect.config import DOCTOR, GATED_FEATURES, PATIENT
from medconnect.errors import ConsentError
from medconnect.rbac import load_access_context
from medconnect.api.auth import generate_token, role_required


def _record_ids_from_body():
    """Return (record_ids, error_response) from the JSON body."""
    data = request.get_json(silent=True) or {}
    record_ids = data.get("record_ids")
    if not isinstance(record_ids, list) or not record_ids:
        return None, (jsonify({"error": "Please provide an array of record IDs"}), 400)
    return record_ids, None


def _actor():
    ctx = request.session_data["ctx"]
    return ctx.role, ctx.actor_id()


def register_routes(app, engine, connections, sharing, gate, sessions):
    """Register all API routes on the Flask *app*."""

    token_required = sessions.token_required

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "MedConnect Consent API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "auth": "/api/auth/login",
                "connections": "/api/connections",
                "gates": "/api/gates/<feature>/<other_id>",
                "logout": "/api/auth/logout",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"database": False}
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            checks["database"] = True
        except Exception as e:
            print(f"[WARN] Health check failed: {e}", file=sys.stderr)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "active_sessions": len(sessions),
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        api_key = (request.json.get("api_key") or "").strip()
        if not api_key:
            return jsonify({"error": "api_key is required"}), 400

        try:
            ctx = load_access_context(engine, api_key)
        except ValueError as e:
            return jsonify({"error": f"Authentication failed: {str(e)}"}), 401

        sessions.cleanup_expired()
        token = generate_token(ctx)
        sessions.add(token, ctx)
        return jsonify({
            "success": True,
            "token": token,
            "user": {
                "id": ctx.user_id,
                "display_name": ctx.display_name,
                "role": ctx.role,
                "patient_id": ctx.patient_id,
                "doctor_id": ctx.doctor_id,
            },
        }), 200

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    def logout():
        sessions.remove(request.token)
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    @app.route("/api/user/profile", methods=["GET"])
    @token_required
    def get_profile():
        session_data = request.session_data
        ctx = session_data["ctx"]
        return jsonify({
            "success": True,
            "user": {
                "id": ctx.user_id,
                "display_name": ctx.display_name,
                "role": ctx.role,
                "patient_id": ctx.patient_id,
                "doctor_id": ctx.doctor_id,
            },
            "session": {
                "created_at": session_data["created_at"].isoformat(),
                "last_activity": session_data["last_activity"].isoformat(),
            },
        }), 200

    # ── Connection lifecycle ─────────────────────────────────────────

    @app.route("/api/connections/request", methods=["POST"])
    @token_required
    @role_required(PATIENT)
    def request_connection():
        data = request.get_json(silent=True) or {}
        doctor_id = data.get("doctor_id")
        if not isinstance(doctor_id, int) or isinstance(doctor_id, bool):
            return jsonify({"error": "doctor_id must be an integer"}), 400

        _, patient_id = _actor()
        connection = connections.request_connection(patient_id, doctor_id)
        return jsonify({
            "success": True,
            "message": "Connection request sent successfully",
            "data": connection.to_dict(),
        }), 201

    @app.route("/api/connections/<int:connection_id>/approve", methods=["PUT"])
    @token_required
    @role_required(DOCTOR)
    def approve_connection(connection_id):
        _, doctor_id = _actor()
        connection = connections.approve_connection(connection_id, doctor_id)
        return jsonify({
            "success": True,
            "message": "Connection approved successfully",
            "data": connection.to_dict(),
        }), 200

    @app.route("/api/connections/<int:connection_id>/reject", methods=["PUT"])
    @token_required
    @role_required(DOCTOR)
    def reject_connection(connection_id):
        _, doctor_id = _actor()
        connection = connections.reject_connection(connection_id, doctor_id)
        return jsonify({
            "success": True,
            "message": "Connection rejected",
            "data": connection.to_dict(),
        }), 200

    @app.route("/api/connections/<int:connection_id>/revoke", methods=["PUT"])
    @token_required
    @role_required(DOCTOR)
    def revoke_connection(connection_id):
        _, doctor_id = _actor()
        connections.revoke_connection(connection_id, doctor_id)
        return jsonify({"success": True, "message": "Connection revoked successfully"}), 200

    @app.route("/api/connections", methods=["GET"])
    @token_required
    def get_my_connections():
        role, actor_id = _actor()
        try:
            rows = connections.list_connections(role, actor_id, request.args.get("status"))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({"success": True, "data": [c.to_dict() for c in rows]}), 200

    @app.route("/api/connections/pending", methods=["GET"])
    @token_required
    @role_required(DOCTOR)
    def get_pending_requests():
        _, doctor_id = _actor()
        rows = connections.pending_requests(doctor_id)
        return jsonify({"success": True, "data": [c.to_dict() for c in rows]}), 200

    @app.route("/api/connections/status/<int:doctor_id>", methods=["GET"])
    @token_required
    @role_required(PATIENT)
    def get_connection_status(doctor_id):
        _, patient_id = _actor()
        connection = connections.connection_status(patient_id, doctor_id)
        return jsonify({
            "success": True,
            "data": connection.to_dict() if connection else None,
        }), 200

    # ── Record sharing ───────────────────────────────────────────────

    @app.route("/api/connections/<int:connection_id>/share", methods=["POST"])
    @token_required
    @role_required(PATIENT)
    def share_records(connection_id):
        record_ids, error = _record_ids_from_body()
        if error:
            return error
        _, patient_id = _actor()
        result = sharing.share_records(connection_id, record_ids, patient_id)
        return jsonify({
            "success": True,
            "message": f"{len(record_ids)} record(s) shared successfully",
            "data": result.to_dict(),
        }), 200

    @app.route("/api/connections/<int:connection_id>/unshare", methods=["POST"])
    @token_required
    @role_required(PATIENT)
    def unshare_records(connection_id):
        record_ids, error = _record_ids_from_body()
        if error:
            return error
        _, patient_id = _actor()
        result = sharing.unshare_records(connection_id, record_ids, patient_id)
        return jsonify({
            "success": True,
            "message": f"{len(record_ids)} record(s) unshared successfully",
            "data": result.to_dict(),
        }), 200

    @app.route("/api/connections/<int:connection_id>/share-all", methods=["POST"])
    @token_required
    @role_required(PATIENT)
    def share_all_records(connection_id):
        _, patient_id = _actor()
        result = sharing.share_all_records(connection_id, patient_id)
        return jsonify({
            "success": True,
            "message": "All records shared successfully",
            "data": result.to_dict(),
        }), 200

    @app.route("/api/connections/<int:connection_id>/shared-records", methods=["GET"])
    @token_required
    def get_shared_records(connection_id):
        role, actor_id = _actor()
        result = sharing.visible_records(connection_id, role, actor_id)
        return jsonify({"success": True, "data": result.to_dict()}), 200

    @app.route("/api/connections/patient/<int:patient_id>/records", methods=["GET"])
    @token_required
    @role_required(DOCTOR)
    def view_patient_records(patient_id):
        _, doctor_id = _actor()
        result = sharing.view_patient_records(doctor_id, patient_id)
        return jsonify({"success": True, "data": result.to_dict()}), 200

    # ── Feature gates ────────────────────────────────────────────────

    @app.route("/api/gates/<feature>/<int:other_id>", methods=["GET"])
    @token_required
    def check_gate(feature, other_id):
        if feature not in GATED_FEATURES:
            return jsonify({"error": f"Unknown gated feature '{feature}'"}), 404
        role, actor_id = _actor()
        if role == PATIENT:
            patient_id, doctor_id = actor_id, other_id
        else:
            patient_id, doctor_id = other_id, actor_id
        allowed = gate.allowed(feature, patient_id, doctor_id)
        return jsonify({
            "success": True,
            "feature": feature,
            "patient_id": patient_id,
            "doctor_id": doctor_id,
            "allowed": allowed,
            "message": None if allowed else GATED_FEATURES[feature],
        }), 200

    @app.route("/api/sessions", methods=["GET"])
    def get_sessions_info():
        if os.getenv("FLASK_ENV") != "development":
            return jsonify({"error": "Not available in production"}), 403
        return jsonify({"active_sessions": len(sessions)}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(ConsentError)
    def consent_error(e):
        return jsonify({"success": False, **e.to_dict()}), e.http_status

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        original = getattr(e, "original_exception", None) or e
        print(f"[ERROR] Unhandled error: {original}", file=sys.stderr)
        traceback.print_exception(type(original), original, original.__traceback__)
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
