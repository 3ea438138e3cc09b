from authflow.models.auth import Session, User, VerificationRequest

__all__ = ["Session", "User", "VerificationRequest"]
