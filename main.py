from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.log_setup import setup_logging
from config.settings import settings
from infrastructure.db.sqlite import init_db
from infrastructure.web.controllers.billing_controller import router as billing_router
from infrastructure.web.controllers.creation_controller import router as creation_router

setup_logging(settings.LOG_LEVEL)

app = FastAPI(title="Creator wallet")

# от CORS
origins = [
    "http://localhost:8000",
    "http://localhost:63342"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
def on_startup():
    # creations live in sqlite for either ledger backend
    init_db(settings.DB_PATH)

@app.get("/health")
def health():
    return {"status": "ok", "ledger_backend": settings.LEDGER_BACKEND}

app.include_router(billing_router)
app.include_router(creation_router)
