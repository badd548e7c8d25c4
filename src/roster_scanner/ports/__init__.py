from .alias_store_port import AliasStorePort
from .auth_port import AuthPort, AuthSubscription
from .image_encoder_port import ImageEncoderPort
from .job_config_port import JobConfigPort
from .profile_port import ProfilePort
from .shift_store_port import ShiftStorePort

__all__ = [
    "AliasStorePort",
    "AuthPort",
    "AuthSubscription",
    "ImageEncoderPort",
    "JobConfigPort",
    "ProfilePort",
    "ShiftStorePort",
]
