import logging

from .constants import APP_NAME, SCHEMA_VERSION, VERSION
from .db import PromptStore
from .models import Prompt, PromptVariable, RegistryLoadResult, RegistrySource, VariableType
from .registry import RegistryLoader

__version__ = VERSION

logging.getLogger(APP_NAME).addHandler(logging.NullHandler())

__all__ = [
    "APP_NAME",
    "SCHEMA_VERSION",
    "Prompt",
    "PromptStore",
    "PromptVariable",
    "RegistryLoadResult",
    "RegistryLoader",
    "RegistrySource",
    "VariableType",
]
