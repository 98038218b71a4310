# fieldcam/xai/core/errors.py

# Typed Failures For One Analysis Request
# Every Fatal Condition Carries A Machine-Readable Reason Code


class AnalysisError(Exception):
    reason = "internal"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.reason)
        self.message = message or self.reason

    def to_dict(self) -> dict:
        return {"reason": self.reason, "message": self.message, "retryable": self.retryable}


class ModelLoadError(AnalysisError):
    """Classifier artifact missing or unreadable."""
    reason = "model_load"
    retryable = True


class ModelIncompatible(AnalysisError):
    """Classifier exposes no feature layer with spatial extent."""
    reason = "model_incompatible"


class EncodingError(AnalysisError):
    """Malformed trail / scan input."""
    reason = "encoding"
