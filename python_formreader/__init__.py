__version__ = "0.1.0"

from .exceptions import FormReaderError, LimitExceededError
from .formreader import (
    AsyncFormReader,
    BaseFormReader,
    FormAccumulator,
    FormPair,
    FormReader,
    PairParser,
    read_form,
    read_form_async,
)

__all__ = (
    "AsyncFormReader",
    "BaseFormReader",
    "FormAccumulator",
    "FormPair",
    "FormReader",
    "FormReaderError",
    "LimitExceededError",
    "PairParser",
    "read_form",
    "read_form_async",
)
