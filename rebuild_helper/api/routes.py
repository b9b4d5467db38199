"""REST API blueprint."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from pathlib import Path

from flask import Blueprint, current_app, jsonify, request, send_file

from ..config import APP_CONFIG, STORAGE_PATHS
from ..core import ProcessingError, SessionStatus
from ..pipelines import ReconciliationSession
from ..tasks import package_export
from ..utils.io import ensure_directory, safe_filename

api_bp = Blueprint("api", __name__)
logger = logging.getLogger(__name__)

_IN_FLIGHT = {"queued", "started", "deferred", "scheduled"}


@api_bp.post("/sessions")
def create_session():
    """Create a session and process the uploaded roster and KMZ."""

    session_id, session = _store().create()
    return _load_uploads(session_id, session, created=True)


@api_bp.post("/sessions/<session_id>/load")
def reload_session(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return _load_uploads(session_id, session, created=False)


@api_bp.get("/sessions/<session_id>")
def session_state(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return jsonify({"session_id": session_id, **session.snapshot()}), 200


@api_bp.get("/sessions/<session_id>/rows")
def session_rows(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    try:
        rows = session.filter_rows(
            view=request.args.get("view", "missing"),
            street=request.args.get("street", ""),
            query=request.args.get("q", ""),
        )
    except ProcessingError as exc:
        return jsonify({"error": exc.as_dict()}), 400
    return jsonify({"rows": [result.as_dict() for result in rows], "count": len(rows)}), 200


@api_bp.post("/sessions/<session_id>/select")
def select_row(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return _reply(session_id, session, session.select(_body().get("row_index")))


@api_bp.post("/sessions/<session_id>/bulk/start")
def bulk_start(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return _reply(session_id, session, session.start_bulk(_body().get("street")))


@api_bp.post("/sessions/<session_id>/bulk/skip")
def bulk_skip(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return _reply(session_id, session, session.skip())


@api_bp.post("/sessions/<session_id>/bulk/stop")
def bulk_stop(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return _reply(session_id, session, session.stop_bulk())


@api_bp.post("/sessions/<session_id>/place")
def place_point(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    body = _body()
    status = session.place_at(body.get("latitude"), body.get("longitude"), body.get("row_index"))
    return _reply(session_id, session, status)


@api_bp.post("/sessions/<session_id>/undo")
def undo_placement(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return _reply(session_id, session, session.undo())


@api_bp.post("/sessions/<session_id>/export")
def export_session(session_id: str):
    """Apply the export strategy and queue KMZ packaging."""

    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    if _export_in_flight(session):
        return jsonify({"error": "An export is already running", "job_id": session.export_job_id}), 409

    try:
        payload = session.prepare_export(strategy=_body().get("strategy"))
    except ProcessingError as exc:
        session.status = SessionStatus.failure(exc)
        return _reply(session_id, session, session.status)
    except Exception as exc:
        logger.exception("Export preparation failed for session %s", session_id)
        session.status = SessionStatus.failure(ProcessingError(f"Export failed: {exc}"))
        return _reply(session_id, session, session.status)

    output_path = ensure_directory(STORAGE_PATHS.outputs / session_id) / payload.filename
    created_at = datetime.utcnow().isoformat()
    job = _queue().enqueue(
        package_export,
        kwargs={
            "kml_bytes": payload.kml_bytes,
            "kml_name": payload.kml_name,
            "output_path": str(output_path),
        },
        job_id=str(uuid.uuid4()),
        meta={"created_at": created_at, "session_id": session_id},
    )
    session.export_job_id = job.id
    session.export_path = output_path
    session.status = SessionStatus.success(f"Exporting {payload.filename}...")

    return jsonify({"job_id": job.id, "status": _status_name(job.get_status(refresh=False)), "created_at": created_at}), 202


@api_bp.get("/sessions/<session_id>/download")
def download_export(session_id: str):
    session = _session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    if _export_in_flight(session):
        return jsonify({"error": "Export still running", "job_id": session.export_job_id}), 409
    if session.export_path is None or not Path(session.export_path).exists():
        return jsonify({"error": "No export available yet"}), 404

    return send_file(
        Path(session.export_path).resolve(),
        mimetype="application/vnd.google-earth.kmz",
        as_attachment=True,
        download_name=APP_CONFIG.output_filename,
    )


@api_bp.get("/jobs/<job_id>")
def job_status(job_id: str):
    job = _queue().fetch_job(job_id)
    if job is None:
        return jsonify({"error": "Job not found"}), 404

    payload: dict[str, object] = {
        "job_id": job.id,
        "status": _status_name(job.get_status(refresh=True)),
        "created_at": job.meta.get("created_at"),
    }

    if job.is_finished:
        payload["result"] = job.result or {}
        return jsonify(payload), 200
    if job.is_failed:
        payload["error"] = job.meta.get("error", job.exc_info)
        return jsonify(payload), 500

    payload["progress"] = job.meta.get("progress", 0)
    return jsonify(payload), 200


def _load_uploads(session_id: str, session: ReconciliationSession, *, created: bool):
    csv_file = request.files.get("csv_file")
    kmz_file = request.files.get("kmz_file")

    if csv_file and csv_file.filename and not _allowed(csv_file.filename, APP_CONFIG.allowed_csv_extensions):
        return jsonify({"session_id": session_id, "error": f"Invalid CSV file: {csv_file.filename}"}), 400
    if kmz_file and kmz_file.filename and not _allowed(kmz_file.filename, APP_CONFIG.allowed_kmz_extensions):
        return jsonify({"session_id": session_id, "error": f"Invalid KMZ file: {kmz_file.filename}"}), 400

    upload_dir = ensure_directory(STORAGE_PATHS.uploads / session_id)
    csv_path = _save(csv_file, upload_dir, "roster.csv")
    kmz_path = _save(kmz_file, upload_dir, "abd.kmz")

    status = session.load(csv_path, kmz_path)
    code = (201 if created else 200) if status.ok else 400
    return jsonify({"session_id": session_id, **session.snapshot()}), code


def _save(uploaded, directory: Path, default: str) -> Path | None:
    if not uploaded or not uploaded.filename:
        return None
    target = directory / safe_filename(uploaded.filename, default=default)
    uploaded.save(target)
    return target


def _reply(session_id: str, session: ReconciliationSession, status: SessionStatus):
    code = 200 if status.ok else 400
    return jsonify({"session_id": session_id, **session.snapshot()}), code


def _export_in_flight(session: ReconciliationSession) -> bool:
    if not session.export_job_id:
        return False
    job = _queue().fetch_job(session.export_job_id)
    return job is not None and _status_name(job.get_status(refresh=True)) in _IN_FLIGHT


def _body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _allowed(filename: str, extensions: tuple[str, ...]) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in extensions


def _session(session_id: str) -> ReconciliationSession | None:
    return _store().get(session_id)


def _store():
    return current_app.extensions["sessions"]


def _queue():
    return current_app.extensions["rq"]["queue"]


def _status_name(status: object) -> str:
    return str(getattr(status, "value", status))
