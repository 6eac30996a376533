import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from options_analyzer.api.routes import router as api_router
from options_analyzer.config import get_settings
from options_analyzer.jobs.price_poller import resume_monitoring
from options_analyzer.state import Services, build_services

log = logging.getLogger("api")


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Builds the API app. Services are constructed at startup from Settings
    unless a prebuilt instance is passed in (tests).
    """
    app = FastAPI(title="Options Analyzer API", version="0.1.0")
    app.include_router(api_router)
    app.state.services = services

    @app.on_event("startup")
    async def _startup():
        settings = get_settings()
        logging.basicConfig(
            level=settings.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        if app.state.services is None:
            app.state.services = build_services(settings)
        app.state.app_env = settings.app_env

        svc = app.state.services
        resumed = resume_monitoring(svc.ledger, svc.monitor, svc.poll_interval_seconds)
        if resumed:
            log.info("Resumed monitoring symbols=%s", resumed)

    @app.on_event("shutdown")
    async def _shutdown():
        # Cancels every price-monitor task and closes HTTP clients.
        if app.state.services is not None:
            await app.state.services.aclose()

    @app.get("/health")
    def health():
        svc = app.state.services
        return {
            "status": "ok",
            "app_env": getattr(app.state, "app_env", None),
            "oracle_configured": bool(svc and svc.oracle),
            "monitored": svc.monitor.monitored_symbols() if svc else [],
        }

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("options_analyzer.main:app", host=settings.api_host, port=settings.api_port)
