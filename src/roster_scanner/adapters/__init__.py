from .image_pillow_adapter import PillowImageEncoder
from .memory_store import InMemoryStore
from .supabase_auth_adapter import SupabaseAuthAdapter
from .supabase_rest_storage import SupabaseRestStorage

__all__ = [
    "InMemoryStore",
    "PillowImageEncoder",
    "SupabaseAuthAdapter",
    "SupabaseRestStorage",
]
