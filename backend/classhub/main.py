"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from classhub import obs
from classhub.engagement import container
from classhub.engagement.api import router as engagement_router
from classhub.engagement.infra.scheduler import MaintenanceScheduler
from classhub.engagement.realtime.namespaces import RealtimeNamespace, SocketIOBroker, build_server
from classhub.engagement.workers.retention import RetentionJob
from classhub.infra import postgres
from classhub.infra.redis import close_redis
from classhub.settings import settings

_LOG = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	dispatcher = container.get_dispatcher()
	dispatcher.set_broker(broker)
	dispatcher_task = asyncio.create_task(dispatcher.run_forever(), name="notifications-dispatcher")
	scheduler: MaintenanceScheduler | None = None
	if settings.workers_enabled:
		retention = RetentionJob(store=container.get_store())
		scheduler = MaintenanceScheduler()
		scheduler.start()
		scheduler.schedule_retention(retention, hours=settings.retention_interval_hours)
		app.state.scheduler = scheduler
	else:
		_LOG.warning("maintenance.disabled", extra={"job": "retention"})
	try:
		yield
	finally:
		if scheduler is not None:
			scheduler.shutdown()
		dispatcher.stop()
		await asyncio.gather(dispatcher_task, return_exceptions=True)
		await dispatcher.drain()
		aclose = getattr(container.get_users(), "aclose", None)
		if callable(aclose):
			await aclose()
		await postgres.close_pool()
		await close_redis()


app = FastAPI(title="Classhub Realtime Engagement", lifespan=lifespan)

allow_origins = list(settings.cors_allow_origins)
if not allow_origins:
	allow_origins = ["http://localhost:3000"] if settings.is_dev() else []

app.add_middleware(
	CORSMiddleware,
	allow_origins=allow_origins,
	allow_credentials=True,
	allow_methods=["*"],
	allow_headers=["*"],
)

obs.init(app)
app.include_router(engagement_router)

sio = build_server(allow_origins)
realtime_namespace = RealtimeNamespace(is_member=container.is_active_member)
sio.register_namespace(realtime_namespace)
broker = SocketIOBroker(sio)
socket_app = socketio.ASGIApp(sio, other_asgi_app=app)
