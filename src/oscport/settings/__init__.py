"""
Settings for oscport.
"""
from oscport.settings.base_settings import (
    BaseSettings,
    FieldValidator,
    ValidationResult,
    validated_field,
)
from oscport.settings.port_settings import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_ENCODING,
    DEFAULT_PORT,
    MAX_BUFFER_SIZE,
    PortInSettings,
)

__all__ = [
    'BaseSettings',
    'FieldValidator',
    'ValidationResult',
    'validated_field',
    'DEFAULT_BUFFER_SIZE',
    'DEFAULT_ENCODING',
    'DEFAULT_PORT',
    'MAX_BUFFER_SIZE',
    'PortInSettings',
]
