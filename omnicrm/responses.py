"""
API Response Models
===================

Standardized API response models.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

class ResponseEnvelope(BaseModel):
    """Schema of every JSON body produced by APIResponse"""
    success: bool
    message: str
    data: Any = None
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    pagination: Optional[Dict[str, Any]] = None

class APIResponse:
    """Standard API response format"""

    @staticmethod
    def success(data=None, message="Success"):
        return {
            "success": True,
            "message": message,
            "data": data
        }

    @staticmethod
    def error(message="Error", error_code=None, details=None):
        return {
            "success": False,
            "message": message,
            "error_code": error_code,
            "details": details
        }

    @staticmethod
    def paginated(data, pagination: Dict[str, Any], message="Success"):
        return {
            "success": True,
            "message": message,
            "data": data,
            "pagination": pagination
        }
