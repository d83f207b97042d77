# kotflow/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kotflow.middleware import RequestIdMiddleware
from kotflow.db import Base, engine, SessionLocal
from kotflow.logging import setup_json_logging
from kotflow import models  # noqa: F401  (registers tables)
from kotflow.services.system_settings import seed_defaults

from kotflow.routers import orders, kot, printers
from kotflow.routers import settings as settings_router

app = FastAPI(title="kotflow API", version="0.1.0")

@app.on_event("startup")
def init_db():
    setup_json_logging()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_defaults(db)
    finally:
        db.close()

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orders.router)
app.include_router(kot.router)
app.include_router(printers.router)
app.include_router(settings_router.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}
