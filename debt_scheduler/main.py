from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response

from debt_scheduler.api.router import api_router
from debt_scheduler.config import settings


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=(settings.LOG_LEVEL or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    app.state.supervisor = None
    client = None
    notifier = None

    if settings.SCHEDULER_ENABLED:
        from debt_scheduler.core.jobs import build_supervisor
        from debt_scheduler.core.notifications.slack import SlackNotifier
        from debt_scheduler.core.settlement.client import HttpSettlementClient

        client = HttpSettlementClient.from_settings(settings)
        notifier = SlackNotifier.from_settings(settings)
        supervisor = build_supervisor(settings, client=client, notifier=notifier)
        await supervisor.start()
        app.state.supervisor = supervisor
    else:
        logger.info("lifespan.scheduler_disabled")

    try:
        yield
    finally:
        supervisor = getattr(app.state, "supervisor", None)
        if supervisor is not None:
            try:
                await supervisor.stop()
            except Exception:
                logger.exception("lifespan.supervisor_stop_failed")
            app.state.supervisor = None

        for resource in (client, notifier):
            if resource is None:
                continue
            try:
                await resource.aclose()
            except Exception:
                logger.exception("lifespan.close_failed resource=%s", resource.__class__.__name__)


app = FastAPI(title="Debt Settlement Scheduler", lifespan=lifespan)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    if not getattr(settings, "METRICS_ENABLED", True):
        return await call_next(request)

    response = await call_next(request)

    try:
        from debt_scheduler.utils.metrics import HTTP_REQUESTS_TOTAL

        route = request.scope.get("route")
        # Keep Prometheus label cardinality low: route template or a fixed label.
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            path_label = route_path
        else:
            path_label = "__unmatched__"
        HTTP_REQUESTS_TOTAL.labels(
            method=request.method, path=path_label, status=str(getattr(response, "status_code", 0))
        ).inc()
    except Exception:
        pass

    return response


app.include_router(api_router)


if getattr(settings, "METRICS_ENABLED", True):

    @app.get("/metrics")
    async def metrics():
        from debt_scheduler.utils.metrics import render_metrics

        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)
