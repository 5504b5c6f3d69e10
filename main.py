#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Microfrontend Drift - API Server

Serves the latest reconciliation result as JSON:
- which commit of every microfrontend is live in each environment
- how far each environment has drifted from development

The reconciliation pass is re-run on a schedule, when the environments file
changes, and on demand through POST /api/refresh. Only the latest result is
kept in memory.

Server configuration via environment variables (defaults to 0.0.0.0:3000).
Set HOST and PORT in .env to customize.
"""

import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from mfe_drift import (
    Config,
    DriftEngineError,
    DriftMode,
    ReconciliationEngine,
    ReconciliationResult,
)
from mfe_drift.logging_config import setup_logging

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="Microfrontend Drift",
    description="Deployed commit and drift per microfrontend and environment",
    version=VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


class RefreshRequest(BaseModel):
    """Trigger a new reconciliation pass"""
    include_drift: bool = Field(
        default=False,
        description="Return drift reports for the new result instead of a summary"
    )
    mode: DriftMode = Field(
        default=DriftMode.BEHIND_BASELINE,
        description="Drift view to return when include_drift is set"
    )


# Global state
config: Optional[Config] = None
engine: Optional[ReconciliationEngine] = None
latest_result: Optional[ReconciliationResult] = None
last_error: Optional[str] = None
refresh_in_progress: bool = False
refresh_lock = threading.Lock()

scheduler = None
config_observer = None


def initialize(new_config: Optional[Config] = None) -> None:
    """Load and validate configuration, then build the engine. Fails fast on missing config."""
    global config, engine

    new_config = new_config or Config.from_env()
    new_config.validate()

    setup_logging(new_config.log_level, secrets=new_config.secrets())
    config = new_config
    engine = ReconciliationEngine(new_config)
    logger.info(f"🔧 Environments: {', '.join(config.environment_names)} (baseline: {config.baseline.name})")


def refresh() -> ReconciliationResult:
    """Run one reconciliation pass and keep its result. Passes never overlap."""
    global latest_result, last_error, refresh_in_progress

    if engine is None:
        raise RuntimeError("Server is not initialized")

    with refresh_lock:
        refresh_in_progress = True
        try:
            result = engine.run()
        except DriftEngineError as e:
            last_error = config.redact_secrets(e)
            logger.error(f"❌ Reconciliation failed: {last_error}")
            raise
        finally:
            refresh_in_progress = False

        latest_result = result
        last_error = None
        return result


def require_result() -> ReconciliationResult:
    if latest_result is None:
        detail = "No reconciliation result yet"
        if last_error:
            detail = f"{detail}; last run failed: {last_error}"
        raise HTTPException(503, detail)
    return latest_result


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "Microfrontend Drift",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "refresh_in_progress": refresh_in_progress,
        "has_results": latest_result is not None,
        "last_error": last_error,
    }


@app.get("/api/info")
async def api_info():
    """API information endpoint"""
    return {
        "service": "Microfrontend Drift",
        "version": VERSION,
        "endpoints": {
            "health": "GET /health",
            "environments": "GET /api/environments",
            "modules": "GET /api/modules",
            "module": "GET /api/modules/{module_name}",
            "drift": "GET /api/drift?mode=behind_baseline|since_deployed",
            "repositories": "GET /api/repositories",
            "refresh": "POST /api/refresh",
        }
    }


@app.get("/api/environments")
async def get_environments():
    """Configured environments and engine policies (no secrets)"""
    if config is None:
        raise HTTPException(503, "Server is not initialized")
    return config.to_public_dict()


@app.get("/api/modules")
async def get_modules():
    """Deployed commit per module and environment from the latest pass"""
    return require_result().to_dict()


@app.get("/api/modules/{module_name}")
async def get_module(module_name: str, mode: DriftMode = DriftMode.BEHIND_BASELINE):
    """Commits and drift for one module"""
    result = require_result()
    row = result.modules.get(module_name)
    if row is None:
        raise HTTPException(404, f"Module '{module_name}' not found")

    drift_row = result.drift(mode)[module_name]
    return {
        "module": module_name,
        "mode": mode.value,
        "environments": {
            env: {
                "commit": detail.to_dict() if detail is not None else None,
                "drift": drift_row[env].to_dict() if drift_row[env] is not None else None,
            }
            for env, detail in row.items()
        },
    }


@app.get("/api/drift")
async def get_drift(mode: DriftMode = DriftMode.BEHIND_BASELINE):
    """Drift reports for the latest pass, in the requested view"""
    return require_result().drift_to_dict(mode)


@app.get("/api/repositories")
async def get_repositories():
    """Organization repositories matching the configured filter prefix"""
    if engine is None:
        raise HTTPException(503, "Server is not initialized")
    try:
        repositories = await run_in_threadpool(engine.list_repositories)
    except DriftEngineError as e:
        raise HTTPException(502, config.redact_secrets(e))
    return {"count": len(repositories), "repositories": repositories}


@app.post("/api/refresh")
async def trigger_refresh(request: Optional[RefreshRequest] = None):
    """Run a reconciliation pass now"""
    request = request or RefreshRequest()
    if engine is None:
        raise HTTPException(503, "Server is not initialized")

    try:
        result = await run_in_threadpool(refresh)
    except DriftEngineError as e:
        raise HTTPException(502, config.redact_secrets(e))

    if request.include_drift:
        return result.drift_to_dict(request.mode)
    return {
        "status": "success",
        "generated_at": result.generated_at.isoformat(),
        "modules": len(result.modules),
        "manifest_errors": result.manifest_errors,
    }


# ============================================================================
# Scheduled refresh and config watcher
# ============================================================================

def scheduled_refresh():
    """Scheduled reconciliation pass"""
    logger.info("⏰ Scheduled refresh triggered")
    try:
        refresh()
    except DriftEngineError:
        # logged and kept in last_error by refresh()
        pass


class ConfigFileHandler(FileSystemEventHandler):
    """Reload configuration and refresh when the environments file changes"""

    def __init__(self, config_path: Path):
        self.config_path = config_path
        self.last_reload = datetime.now()
        self.debounce_seconds = 5

    def on_modified(self, event):
        if Path(event.src_path).name != self.config_path.name:
            return
        now = datetime.now()
        if (now - self.last_reload).total_seconds() <= self.debounce_seconds:
            return
        self.last_reload = now

        logger.info("📝 Environments file changed - reloading")
        try:
            initialize(Config.from_env(config_file=self.config_path))
        except DriftEngineError as e:
            logger.error(f"❌ Keeping previous configuration: {e}")
            return
        scheduled_refresh()


def start_automation():
    """Start the refresh scheduler and the config file watcher"""
    global scheduler, config_observer

    scheduler = BackgroundScheduler()
    scheduler.add_job(
        scheduled_refresh,
        IntervalTrigger(minutes=config.refresh_minutes),
        id='drift_refresh',
        replace_existing=True,
        next_run_time=datetime.now(),
    )
    scheduler.start()
    logger.info(f"✅ Scheduler: refresh every {config.refresh_minutes} minutes")

    config_path = config.config_file
    if config_path and config_path.exists():
        config_observer = Observer()
        config_observer.schedule(ConfigFileHandler(config_path), str(config_path.parent), recursive=False)
        config_observer.start()
        logger.info(f"✅ File watcher: monitoring {config_path.name}")


def stop_automation():
    """Stop the scheduler and file watcher"""
    global scheduler, config_observer
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("✅ Scheduler stopped")
    if config_observer:
        config_observer.stop()
        config_observer.join(timeout=5)
        config_observer = None
        logger.info("✅ File watcher stopped")


@app.on_event("startup")
async def startup_event():
    """Validate configuration and start automation on server startup"""
    if engine is None:
        initialize()
    start_automation()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop automation on server shutdown"""
    stop_automation()


def main():
    """Start the API server"""
    initialize()

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))

    logger.info("=" * 80)
    logger.info("🚀 MICROFRONTEND DRIFT")
    logger.info(f"   API:    http://localhost:{port}/api/drift")
    logger.info(f"   Docs:   http://localhost:{port}/docs")
    logger.info(f"   Health: http://localhost:{port}/health")
    logger.info("=" * 80)

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
