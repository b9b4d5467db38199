"""RQ task definitions for asynchronous KMZ packaging."""

from __future__ import annotations

from pathlib import Path

from rq import get_current_job

from .core import ProcessingError
from .services import KmzExporter


def package_export(*, kml_bytes: bytes, kml_name: str, output_path: str) -> dict:
    """Compress serialized KML into the exported KMZ archive."""

    job = get_current_job()
    if job:
        job.meta["progress"] = 0
        job.save_meta()

    try:
        written = KmzExporter().write(kml_bytes, kml_name, Path(output_path))
    except OSError as exc:
        error = ProcessingError("Could not write the exported KMZ", details={"path": output_path, "reason": str(exc)})
        if job:
            job.meta["error"] = error.as_dict()
            job.save_meta()
        raise error from exc

    if job:
        job.meta["progress"] = 100
        job.save_meta()

    return {"file": written.name, "kml_name": kml_name, "size": written.stat().st_size}
