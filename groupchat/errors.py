"""
Error taxonomy shared by the HTTP API and the Socket.IO handlers
"""


class ChatError(Exception):
    """Base class for errors that are reported back to the client"""
    status_code = 500
    code = 'error'

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class ValidationError(ChatError):
    """Invalid input"""
    status_code = 400
    code = 'validation_error'


class AuthError(ChatError):
    """Missing or invalid token"""
    status_code = 401
    code = 'auth_error'


class ForbiddenError(ChatError):
    """Not allowed"""
    status_code = 403
    code = 'forbidden'


class NotFoundError(ChatError):
    """Not found"""
    status_code = 404
    code = 'not_found'


class ConflictError(ChatError):
    """Already exists"""
    status_code = 409
    code = 'conflict'


class TransientError(ChatError):
    """Temporarily unavailable, please retry"""
    status_code = 503
    code = 'transient_error'
