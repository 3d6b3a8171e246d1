__all__ = ["OTPCleanupWorker"]


def __getattr__(name: str):
    if name == "OTPCleanupWorker":
        from .otp_cleanup_worker import OTPCleanupWorker

        return OTPCleanupWorker
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
