"""
Custom Exceptions untuk OmniCRM Services
=======================================

Definisi semua custom exceptions yang digunakan dalam sync core.

Taxonomy:
- AuthError          bad/expired credential, fatal for a sync batch
- RateLimitedError   transient, the batch pauses; tenant is not marked error
- ValidationError    malformed remote payload, skip the entity
- NotFoundError      missing warehouse/credential config, skip the operation
- PolicyDenied       warehouse policy refusal, a deliberate no-op
"""

class CRMException(Exception):
    """Base exception untuk semua OmniCRM errors"""
    def __init__(self, message, error_code=None, details=None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

class ValidationError(CRMException):
    """Error untuk validation failures"""
    def __init__(self, message, field=None, details=None):
        super().__init__(message, 'VALIDATION_ERROR', details)
        self.field = field

class BusinessRuleError(CRMException):
    """Error untuk business rule violations"""
    def __init__(self, message, rule_code=None, details=None):
        super().__init__(message, 'BUSINESS_RULE_ERROR', details)
        self.rule_code = rule_code

class NotFoundError(CRMException):
    """Error ketika resource tidak ditemukan"""
    def __init__(self, resource_type, resource_id, details=None):
        message = f"{resource_type} with ID {resource_id} not found"
        super().__init__(message, 'NOT_FOUND', details)
        self.resource_type = resource_type
        self.resource_id = resource_id

class ConflictError(CRMException):
    """Error untuk resource conflicts"""
    def __init__(self, message, resource_type=None, details=None):
        super().__init__(message, 'CONFLICT_ERROR', details)
        self.resource_type = resource_type

class PolicyDenied(CRMException):
    """Warehouse policy refused the operation. Not a failure, a no-op."""
    def __init__(self, warehouse_id, direction, reason, details=None):
        message = f"Warehouse {warehouse_id} denies {direction}: {reason}"
        super().__init__(message, 'POLICY_DENIED', details)
        self.warehouse_id = warehouse_id
        self.direction = direction
        self.reason = reason

class QueueFullError(CRMException):
    """Request queue depth exceeded its bound"""
    def __init__(self, depth, max_depth):
        super().__init__(f"Request queue is full ({depth}/{max_depth})", 'QUEUE_FULL',
                         {'depth': depth, 'max_depth': max_depth})
        self.depth = depth
        self.max_depth = max_depth

class WaitTimeoutError(CRMException):
    """Polling a remote job did not finish before its deadline"""
    def __init__(self, message, deadline=None, details=None):
        super().__init__(message, 'WAIT_TIMEOUT', details)
        self.deadline = deadline

class ExternalServiceError(CRMException):
    """Error untuk external service failures"""
    def __init__(self, service_name, message, status_code=None, details=None, error_code='EXTERNAL_SERVICE_ERROR'):
        super().__init__(f"{service_name}: {message}", error_code, details)
        self.service_name = service_name
        self.status_code = status_code

class ApiError(ExternalServiceError):
    """Generic remote API failure"""
    def __init__(self, message, status_code=None, remote_code=None, details=None, error_code='API_ERROR'):
        super().__init__('ERP', message, status_code, details, error_code)
        self.remote_code = remote_code

class AuthError(ApiError):
    """Credential rejected by the remote API"""
    def __init__(self, message="Authentication failed", status_code=None, remote_code=None, details=None,
                 error_code='AUTH_ERROR'):
        super().__init__(message, status_code, remote_code, details, error_code)

class UnauthorizedError(AuthError):
    def __init__(self, message="Unauthorized. Please check your API key.", status_code=401, remote_code=None,
                 details=None):
        super().__init__(message, status_code, remote_code, details, 'UNAUTHORIZED')

class ForbiddenError(AuthError):
    def __init__(self, message="Forbidden. The API key lacks the required permissions.", status_code=403,
                 remote_code=None, details=None):
        super().__init__(message, status_code, remote_code, details, 'FORBIDDEN')

class RateLimitedError(ApiError):
    """Remote query limit hit; blocked_until is when the token unblocks (if known)"""
    def __init__(self, message="Query limit exceeded", blocked_until=None, status_code=None, remote_code=None,
                 details=None):
        super().__init__(message, status_code, remote_code, details, 'RATE_LIMITED')
        self.blocked_until = blocked_until
