from utils.exceptions import (
    ShoeImageError,
    TransientNetworkError,
    StructuralRejection,
    SemanticRejection,
    SemanticUnavailableError,
    ProcessingError,
    SourceError,
    ImageNotFoundError,
    ConfigurationError,
)
from utils.log_config import get_logger
from utils.concurrency import AtomicCounter
from utils.retry import RetryPolicy, retry_call
from utils.text_cleaner import clean_query, is_valid_query, normalize_key, slugify
