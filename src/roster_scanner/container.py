from __future__ import annotations

import logging
from typing import Any, Callable

from roster_scanner.adapters.image_pillow_adapter import PillowImageEncoder
from roster_scanner.adapters.memory_store import InMemoryStore
from roster_scanner.adapters.supabase_auth_adapter import SupabaseAuthAdapter
from roster_scanner.adapters.supabase_rest_storage import SupabaseRestStorage
from roster_scanner.settings import (
    AUTH_RETRY_DELAY_SECONDS,
    KEYRING_SERVICE,
    MAX_AUTH_RETRIES,
    ROSTER_REQUEST_TIMEOUT_SECONDS,
    ROSTER_SCAN_DEFAULT_LIMIT,
    ROSTER_SCAN_ELEVATED_EMAILS,
    ROSTER_SCAN_LIMIT,
    SUCCESS_CLOSE_DELAY_SECONDS,
    SUPABASE_ANON_KEY,
    SUPABASE_URL,
    TOKEN_REFRESH_THRESHOLD_SECONDS,
    TOKEN_RELEASE_GRACE_SECONDS,
    roster_function_url,
)
from roster_scanner.services.auth_gate import AuthGate
from roster_scanner.services.job_mapping_service import JobMappingReconciler
from roster_scanner.services.pipeline_controller import PipelineController
from roster_scanner.services.scan_client import ScanClient
from roster_scanner.services.token_manager import TokenManager
from roster_scanner.services.usage_gate import UsageGate

LOGGER = logging.getLogger(__name__)


def build_services() -> dict[str, Any]:
    auth = SupabaseAuthAdapter(
        base_url=SUPABASE_URL,
        anon_key=SUPABASE_ANON_KEY,
        keyring_service=KEYRING_SERVICE,
    )
    tokens = TokenManager(
        auth,
        refresh_threshold_seconds=TOKEN_REFRESH_THRESHOLD_SECONDS,
        release_grace_seconds=TOKEN_RELEASE_GRACE_SECONDS,
    )
    if SUPABASE_URL and SUPABASE_ANON_KEY:
        store = SupabaseRestStorage(SUPABASE_URL, SUPABASE_ANON_KEY, tokens)
    else:
        LOGGER.warning("Supabase is not configured; using in-memory storage")
        store = InMemoryStore()
    scan_client = ScanClient(
        tokens,
        function_url=roster_function_url(),
        anon_key=SUPABASE_ANON_KEY,
        retry_delay_seconds=AUTH_RETRY_DELAY_SECONDS,
        max_auth_retries=MAX_AUTH_RETRIES,
        timeout_seconds=ROSTER_REQUEST_TIMEOUT_SECONDS,
    )
    return {
        "auth": auth,
        "token_manager": tokens,
        "store": store,
        "scan_client": scan_client,
        "job_mapping_reconciler": JobMappingReconciler(store),
        "usage_gate": UsageGate(
            store,
            app_limit=ROSTER_SCAN_LIMIT,
            default_limit=ROSTER_SCAN_DEFAULT_LIMIT,
            elevated_emails=ROSTER_SCAN_ELEVATED_EMAILS,
        ),
        "auth_gate": AuthGate(auth),
        "image_encoder": PillowImageEncoder(),
    }


def build_pipeline(
    services: dict[str, Any], on_close: Callable[[], None] | None = None
) -> PipelineController:
    store = services["store"]
    return PipelineController(
        scan_client=services["scan_client"],
        reconciler=services["job_mapping_reconciler"],
        usage_gate=services["usage_gate"],
        image_encoder=services["image_encoder"],
        jobs=store,
        shift_store=store,
        profile=store,
        auth=services["auth"],
        on_close=on_close,
        success_close_delay_seconds=SUCCESS_CLOSE_DELAY_SECONDS,
    )
