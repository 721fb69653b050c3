"""Core functionality for img-mcp.

The core is independent of the MCP transport and is organised leaf first:

1. **Path validation** (paths.py):
   - Traversal rejection on the raw string
   - Strict containment in a fixed set of allowed directories

2. **Metadata** (records.py, metadata_store.py):
   - ImageRecord model with the metadata-file field names
   - Write-through JSON store, reconciled against the disk on load

3. **Upstream access** (upstream.py, retry.py):
   - ImageBackend interface and the google-genai implementation
   - Exponential-backoff retry for transient failures

4. **Orchestration** (generation.py, session.py):
   - GenerationService for generate / edit / continue
   - Session object holding the credential state and last image

5. **Support**:
   - config.py: Pydantic Settings configuration
   - errors.py: error taxonomy and secret redaction
"""

from imgmcp.core.config import ImgMcpConfig, config
from imgmcp.core.errors import (
    ImgMcpError,
    InvalidInput,
    NoPriorImage,
    NotConfigured,
    NotFound,
    PathDenied,
    PersistenceFailure,
    UpstreamFailure,
)
from imgmcp.core.generation import GenerationOutcome, GenerationService
from imgmcp.core.metadata_store import MetadataStore
from imgmcp.core.paths import PathValidator, is_supported_image_file
from imgmcp.core.records import ImageKind, ImageRecord
from imgmcp.core.retry import RetryPolicy, run_with_retry
from imgmcp.core.session import GenerationSettings, Session
from imgmcp.core.upstream import GeminiImageBackend, ImageBackend

__all__ = [
    "GeminiImageBackend",
    "GenerationOutcome",
    "GenerationService",
    "GenerationSettings",
    "ImageBackend",
    "ImageKind",
    "ImageRecord",
    "ImgMcpConfig",
    "ImgMcpError",
    "InvalidInput",
    "MetadataStore",
    "NoPriorImage",
    "NotConfigured",
    "NotFound",
    "PathDenied",
    "PathValidator",
    "PersistenceFailure",
    "RetryPolicy",
    "Session",
    "UpstreamFailure",
    "config",
    "is_supported_image_file",
    "run_with_retry",
]
