"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from medconnect.config import TOKEN_EXPIRY_HOURS
from medconnect.connections import ConnectionService
from medconnect.database import init_engine, create_schema
from medconnect.gates import FeatureGate
from medconnect.sharing import SharingService
from medconnect.api.auth import SessionRegistry
from medconnect.api.routes import register_routes


def create_app(engine=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    try:
        if engine is None:
            print("[init] Initializing database connection...")
            engine = init_engine()

        print("[init] Ensuring schema...")
        create_schema(engine)

        connections = ConnectionService.from_engine(engine)
        sharing = SharingService.from_engine(engine, connections)
        gate = FeatureGate(connections)
        sessions = SessionRegistry()

        print("[init] ✓ API server ready")
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    app.extensions["medconnect"] = {
        "engine": engine,
        "connections": connections,
        "sharing": sharing,
        "gate": gate,
        "sessions": sessions,
    }

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, engine, connections, sharing, gate, sessions)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("MedConnect – Consent & Record Sharing API")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] CORS enabled: True")
    print(f"[server] Session expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - POST http://{host}:{port}/api/connections/request")
    print(f"  - PUT  http://{host}:{port}/api/connections/<id>/approve|reject|revoke")
    print(f"  - POST http://{host}:{port}/api/connections/<id>/share|unshare|share-all")
    print(f"  - GET  http://{host}:{port}/api/connections/<id>/shared-records")
    print(f"  - GET  http://{host}:{port}/api/gates/<feature>/<other_id>")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
