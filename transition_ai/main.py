from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from transition_ai.config import get_settings
from transition_ai.database import init_db, AsyncSessionLocal
from transition_ai.middleware.correlation import CorrelationMiddleware
from transition_ai.routes import transitions
from transition_ai.services import transition_store
from transition_ai.services.gateway import get_gateway
from transition_ai.utils.logger import logger
from transition_ai.utils.metrics import get_snapshot

settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version)
app.state.limiter = transitions.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS - Explicit origins for security
allowed_origins = [origin.strip() for origin in settings.allowed_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,  # Explicit origins from config
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID"],
)
app.add_middleware(CorrelationMiddleware)


# Startup: Initialize database and seed role skills
@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.app_name} Backend...")
    await init_db()
    async with AsyncSessionLocal() as db:
        await transition_store.seed_role_skills(db)
    if not settings.perplexity_api_key:
        logger.warning("PERPLEXITY_API_KEY is not set; search stages will fail until it is configured")
    logger.info(f"Backend ready at http://{settings.backend_host}:{settings.backend_port}")


@app.get("/health")
async def health_check():
    circuits = get_gateway().get_circuit_states()
    status = "degraded" if any(state == "open" for state in circuits.values()) else "ok"
    return {"status": status, "circuits": circuits}


@app.get("/metrics")
async def metrics():
    return get_snapshot()


# Register routes
app.include_router(transitions.router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "transition_ai.main:app",
        host=settings.backend_host,
        port=settings.backend_port,
        reload=settings.debug
    )
