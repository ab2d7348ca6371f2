# app/deps.py
from functools import lru_cache

from supabase import create_client, Client  # supabase-py
from app.core.config import settings
from app.services.analytics import Ga4Notifier
from app.services.connectivity import HttpConnectivity
from app.services.lead_capture_service import LeadCapturePipeline
from app.services.lead_form_state import FormSessions
from app.services.lead_store import SupabaseLeadStore
from app.services.lead_writer import RetryPolicy
from app.services.local_storage import NamespacedStorage, build_local_storage


@lru_cache
def _supabase_client() -> Client:
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_SERVICE_ROLE_KEY

    if not url or not key:
        raise RuntimeError("SUPABASE_URL ou SUPABASE_SERVICE_ROLE_KEY faltando no .env")

    return create_client(url, key)


def get_supabase_admin() -> Client:
    return _supabase_client()


@lru_cache
def get_local_storage() -> NamespacedStorage:
    return build_local_storage(settings.LEAD_STORAGE_PATH, settings.LEAD_STORAGE_NAMESPACE)


@lru_cache
def get_lead_capture_pipeline() -> LeadCapturePipeline:
    # uma instância por processo: dona do rate-limit e da fila offline
    return LeadCapturePipeline(
        store=SupabaseLeadStore(get_supabase_admin()),
        storage=get_local_storage(),
        is_online=HttpConnectivity(settings.CONNECTIVITY_CHECK_URL or settings.SUPABASE_URL),
        table=settings.LEADS_TABLE,
        rate_limit_seconds=settings.RATE_LIMIT_SECONDS,
        policy=RetryPolicy(
            max_attempts=settings.MAX_INSERT_ATTEMPTS,
            base_delay=settings.RETRY_DELAY_SECONDS,
        ),
    )


@lru_cache
def get_analytics() -> Ga4Notifier:
    return Ga4Notifier(settings.GA4_MEASUREMENT_ID, settings.GA4_API_SECRET)


@lru_cache
def get_form_sessions() -> FormSessions:
    # mesmo storage do pipeline: o submit com sucesso apaga o rascunho salvo aqui
    return FormSessions(get_local_storage())
