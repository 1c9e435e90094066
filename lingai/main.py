import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import catalog, jobs, lessons, media, onboarding, user
from .schemas import UserCreate, UserRead, UserUpdate
from .services.container import build_services
from .services.scheduler import start_scheduler, stop_scheduler
from .settings.config import settings
from .users import auth_backend, fastapi_users

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LingAI")

# Enable CORS if needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------
# Route Includes
# ----------------------
app.include_router(onboarding.router)
app.include_router(lessons.router)
app.include_router(media.router)
app.include_router(user.router)
app.include_router(catalog.router)
app.include_router(jobs.router)

# Authentication Routes
app.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix="/auth/jwt",
    tags=["auth"]
)
app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"]
)
app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"]
)


@app.on_event("startup")
async def on_startup():
    # tests install their own services before the app starts
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(settings)
    await app.state.services.startup()
    app.state.scheduler = start_scheduler(app.state.services)


@app.on_event("shutdown")
async def on_shutdown():
    stop_scheduler(getattr(app.state, "scheduler", None))
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.shutdown()


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}
