from fastapi import FastAPI, Response
from dotenv import load_dotenv
import logging

load_dotenv()

from db.init import init_db
from routers import mercadopago
from utils.config import get_settings
from fastapi.middleware.cors import CORSMiddleware

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Marketplace Payments Backend")

# Called from the web app, the mobile app and Mercado Pago itself
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,        # must stay False with a wildcard origin
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Client-Info", "Apikey"],
)

@app.on_event("startup")
def startup():
    if settings.auto_create_tables:
        init_db()

# CORSMiddleware answers real preflights; this covers bare OPTIONS probes
@app.options("/{rest_of_path:path}", include_in_schema=False)
def preflight(rest_of_path: str):
    return Response(status_code=200)

@app.get("/health")
def health_check():
    return {"status": "ok"}

# Routers
app.include_router(mercadopago.router, prefix="/mercadopago", tags=["Mercado Pago"])


@app.get("/")
def root():
    return {"message": "Marketplace Payments Backend running successfully"}
