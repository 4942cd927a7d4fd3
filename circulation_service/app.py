import os
import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import Config
from .errors import InvalidParameter, SnapshotUnavailable
from .models import Base
from .params import parse_as_of
from .reports import run_report
from .snapshot import load_snapshot
from .temporal import TemporalContext, clock_from_config

# ---------------------------------------------------------
# Logging
# ---------------------------------------------------------
logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# Flask + DB setup
# ---------------------------------------------------------

app = Flask(__name__)
app.config.from_object(Config)
CORS(app)

engine = create_engine(
    app.config["SQLALCHEMY_DATABASE_URI"],
    echo=app.config["SQLALCHEMY_ECHO"],
    future=True,
)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

# Create tables if not present
Base.metadata.create_all(engine)

clock = clock_from_config(app.config)


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------

def read_snapshot():
    """One session, one bulk read per table, closed before computing."""
    session = SessionLocal()
    try:
        return load_snapshot(session)
    finally:
        session.close()


def temporal_context():
    as_of = parse_as_of(request.args.get("as_of"))
    return TemporalContext.of(as_of or clock.today())


def report_response(name, settings=None, **params):
    context = temporal_context()
    result = run_report(name, read_snapshot, context, settings=settings, **params)
    return jsonify(result.to_dict())


@app.errorhandler(InvalidParameter)
def handle_invalid_parameter(e):
    logger.warning("Rejected %s on %s: %s", e.name, request.path, e.message)
    return jsonify({"error": str(e)}), 400


@app.errorhandler(SnapshotUnavailable)
def handle_snapshot_unavailable(e):
    logger.error("Report %s failed, entity store unavailable: %s", request.path, e)
    return jsonify({"error": "Circulation data is unavailable, try again later"}), 503


# ---------------------------------------------------------
# Health
# ---------------------------------------------------------

@app.get("/api/health")
def health_check():
    return jsonify({"status": "ok", "service": "circulation_service"}), 200


# ---------------------------------------------------------
# Reports
# ---------------------------------------------------------

@app.get("/api/reports/dashboard")
def dashboard_report():
    return report_response("dashboard")


@app.get("/api/reports/overdue-risk")
def overdue_risk_report():
    return report_response("overdue-risk")


@app.get("/api/reports/catalog")
def catalog_report():
    """
    Catalog with popularity and availability.
    - ?search=...      substring of title or ISBN (case-insensitive)
    - ?subject_id=...  only books whose primary subject is this id
    """
    return report_response(
        "catalog",
        search=request.args.get("search"),
        subject_id=request.args.get("subject_id"),
    )


@app.get("/api/reports/patron-risk")
def patron_risk_report():
    return report_response(
        "patron-risk",
        settings={"recent_days": app.config["RECENT_BORROWER_DAYS"]},
    )


@app.get("/api/reports/loans")
def loans_report():
    """
    ?status=ALL|CURRENT|OVERDUE|RETURNED  (default ALL)
    """
    return report_response("loans", status_filter=request.args.get("status"))


@app.get("/api/reports/monthly-trend")
def monthly_trend_report():
    return report_response("monthly-trend")


if __name__ == "__main__":
    port = int(os.getenv("PORT", "5010"))
    app.run(host="0.0.0.0", port=port, debug=True)
