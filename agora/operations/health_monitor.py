# agora/operations/health_monitor.py

# Liveness/readiness checks: database, disk, background sweeper

import os
import shutil
from typing import Dict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

MIN_FREE_DISK_GB = float(os.getenv("MIN_FREE_DISK_GB", "1"))


def _check_db(db) -> Dict:
    try:
        db.session.execute(text("SELECT 1"))
        return {"ok": True, "detail": "database reachable"}
    except SQLAlchemyError as e:
        db.session.rollback()
        return {"ok": False, "error": str(e)}


def _check_disk(path=".") -> Dict:
    total, used, free = shutil.disk_usage(path)
    free_gb = free / (1024**3)
    return {"ok": free_gb >= MIN_FREE_DISK_GB, "free_gb": round(free_gb, 2), "min_required_gb": MIN_FREE_DISK_GB}


def _check_sweeper(sweeper) -> Dict:
    if sweeper is None or not sweeper.started:
        # Sweeps are optional in a process that only serves requests
        return {"ok": True, "running": False}
    alive = sweeper.is_alive()
    return {"ok": alive, "running": alive, "last_runs": sweeper.last_runs()}


def check_health(db, sweeper=None) -> Dict:
    """Aggregate overall system health."""
    database = _check_db(db)
    disk = _check_disk()
    sweeps = _check_sweeper(sweeper)
    overall = database["ok"] and disk["ok"] and sweeps["ok"]
    return {"db": database, "disk": disk, "sweeper": sweeps, "overall_ok": overall}


def check_ready(db) -> Dict:
    database = _check_db(db)
    return {"db": database, "overall_ok": database["ok"]}
