from .auth_gate import AuthGate
from .job_mapping_service import JobMappingReconciler
from .pipeline_controller import PipelineController, PipelineState, ScanStep
from .scan_client import ScanClient
from .token_manager import TokenManager
from .usage_gate import UsageGate

__all__ = [
    "AuthGate",
    "JobMappingReconciler",
    "PipelineController",
    "PipelineState",
    "ScanClient",
    "ScanStep",
    "TokenManager",
    "UsageGate",
]
