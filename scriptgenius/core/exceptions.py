from fastapi import HTTPException, status


class ScriptNotFoundError(HTTPException):
    """Exception raised when a script is not found for the user."""

    def __init__(self, script_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Script with ID '{script_id}' not found"
        )


class SubscriptionNotFoundError(HTTPException):
    """Exception raised when a gateway subscription is unknown."""

    def __init__(self, subscription_id: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Subscription '{subscription_id}' not found"
        )


class ScriptLimitReachedError(HTTPException):
    """Exception raised when the user's plan has no scripts left in the current window."""

    def __init__(self, message: str, limit_type: str, total: int):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": message,
                "limitType": limit_type,
                "total": total,
                "remaining": 0
            }
        )


class ScriptGenerationError(HTTPException):
    """Exception raised when the generative-text provider fails."""

    def __init__(self, message: str = "Failed to generate script. Please try again."):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=message
        )


class UpstreamAuthError(HTTPException):
    """Exception raised when a provider rejects our credentials."""

    def __init__(self, message: str = "Invalid API configuration"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message
        )


class UpstreamRateLimitError(HTTPException):
    """Exception raised when a provider reports quota or rate-limit exhaustion."""

    def __init__(self, message: str = "API rate limit exceeded"):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=message
        )


class AudioGenerationError(HTTPException):
    """Exception raised when speech synthesis or audio upload fails."""

    def __init__(self, message: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Error generating audio: {message}"
        )


class PaymentGatewayError(HTTPException):
    """Exception raised when the payment gateway call fails."""

    def __init__(self, message: str = "Payment gateway request failed"):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=message
        )


class WebhookSignatureError(HTTPException):
    """Exception raised when a webhook payload fails signature verification."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=message
        )


class ServiceNotConfiguredError(HTTPException):
    """Exception raised when a provider key required by this request path is missing."""

    def __init__(self, service: str):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{service} is not configured"
        )


class AuthenticationError(HTTPException):
    """Exception raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"}
        )


class AuthorizationError(HTTPException):
    """Exception raised for authorization failures."""

    def __init__(self, message: str = "Not authorized to access this resource"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=message
        )


class RateLimitError(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=message
        )
