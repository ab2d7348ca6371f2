# app/core/config.py
from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()


class Settings(BaseModel):
    APP_NAME: str = "Flor do Maracujá - Lead Capture"
    ENV: str = os.getenv("ENV", "dev")
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    LEADS_TABLE: str = os.getenv("LEADS_TABLE", "leads")

    # persistência local (rate-limit, fila offline, rascunho)
    LEAD_STORAGE_PATH: str = os.getenv("LEAD_STORAGE_PATH", "")
    LEAD_STORAGE_NAMESPACE: str = os.getenv("LEAD_STORAGE_NAMESPACE", "flor_")

    RATE_LIMIT_SECONDS: float = float(os.getenv("RATE_LIMIT_SECONDS", "60"))
    MAX_INSERT_ATTEMPTS: int = int(os.getenv("MAX_INSERT_ATTEMPTS", "3"))
    RETRY_DELAY_SECONDS: float = float(os.getenv("RETRY_DELAY_SECONDS", "2"))

    CONNECTIVITY_CHECK_URL: str = os.getenv("CONNECTIVITY_CHECK_URL", "")

    GA4_MEASUREMENT_ID: str = os.getenv("GA4_MEASUREMENT_ID", "")
    GA4_API_SECRET: str = os.getenv("GA4_API_SECRET", "")

    class Config:
        frozen = True  # evita mudanças acidentais


settings = Settings()
