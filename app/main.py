# app/main.py
import threading

from fastapi import FastAPI
from fastapi.routing import APIRoute
from fastapi.middleware.cors import CORSMiddleware

from app.routers.health import router as health_router
from app.routers.lead_capture import router as lead_capture_router
from app.core.config import settings
from app.deps import get_lead_capture_pipeline

app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
)

origins = [
    "http://localhost:5173",                # dev (vite)
    "https://flordomaracuja.com.br",        # ajustar para o domínio real
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", include_in_schema=False)
@app.get("", include_in_schema=False)
def root():
    return {"message": "backend no ar"}


# Routers
app.include_router(health_router)
app.include_router(lead_capture_router)


def _replay_offline_leads() -> None:
    try:
        pipeline = get_lead_capture_pipeline()
    except Exception as e:
        print("WARN: pipeline de leads indisponível, replay offline adiado:", repr(e))
        return
    summary = pipeline.replay_offline_queue()
    if summary.attempted:
        print(
            f"[LeadCapture] Replay offline: {summary.delivered} entregue(s), "
            f"{summary.dropped} descartado(s), {summary.remaining} pendente(s)"
        )


@app.on_event("startup")
async def replay_offline_queue_on_startup():
    # não bloqueia o startup; cada início do processo é um ciclo de replay
    threading.Thread(target=_replay_offline_leads, name="offline-lead-replay", daemon=True).start()


@app.on_event("startup")
async def print_routes():
    print("=== ROTAS REGISTRADAS ===")
    for route in app.routes:
        if isinstance(route, APIRoute):
            print(f"{sorted(route.methods)} -> {route.path}")
    print("=========================")
