from .lifecycle import SdkLifecycle, default_lifecycle, get_default_lifecycle, is_relayer_sdk

__all__ = ["SdkLifecycle", "default_lifecycle", "get_default_lifecycle", "is_relayer_sdk"]
