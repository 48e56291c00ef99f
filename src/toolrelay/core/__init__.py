"""Core services for toolrelay."""

from .schema import (
    CompiledSchema,
    SchemaDefinitionError,
    SchemaValidationError,
    ValidatedInput,
    ValidationIssue,
    compile_schema,
    validate,
)
from .workers import (
    CodeExecutionWorker,
    FailureReason,
    SearchWorker,
    WorkerAdapter,
    WorkerExecutionError,
    WorkerFault,
    WorkerInvocation,
    WorkerSettings,
    WorkerTimeoutError,
    WorkerUnavailableError,
)
from .tools.base import Tool, ToolClass, ToolFailure, Toolkit, ToolResult, ToolSuccess
from .tool_registry import (
    RegistryFrozenError,
    ToolAlreadyRegisteredError,
    ToolkitAlreadyRegisteredError,
    ToolNotFoundError,
    ToolRegistry,
    ToolRegistryError,
    build_default_registry,
)
from .agent import (
    AgentToolResult,
    ToolCallParseError,
    ToolCallRequest,
    build_tool_manifest,
    manifest_to_prompt_section,
    parse_tool_calls,
    to_function_specs,
    tool_declarations,
)
from .logs import DispatchLog, LogEntry
from .dispatcher import CallState, CallTrace, Dispatcher, DispatchTimeouts, InvalidTransitionError
from .config import (
    DEFAULT_CONFIG_DIR,
    ConfigContext,
    ConfigManager,
    ConfigurationError,
    CredentialStore,
    ToolRelayConfig,
)

__all__ = [
    "AgentToolResult",
    "CallState",
    "CallTrace",
    "CodeExecutionWorker",
    "CompiledSchema",
    "ConfigContext",
    "ConfigManager",
    "ConfigurationError",
    "CredentialStore",
    "DEFAULT_CONFIG_DIR",
    "DispatchLog",
    "DispatchTimeouts",
    "Dispatcher",
    "FailureReason",
    "InvalidTransitionError",
    "LogEntry",
    "RegistryFrozenError",
    "SchemaDefinitionError",
    "SchemaValidationError",
    "SearchWorker",
    "Tool",
    "ToolAlreadyRegisteredError",
    "ToolCallParseError",
    "ToolCallRequest",
    "ToolClass",
    "ToolFailure",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolRegistryError",
    "ToolRelayConfig",
    "ToolResult",
    "ToolSuccess",
    "Toolkit",
    "ToolkitAlreadyRegisteredError",
    "ValidatedInput",
    "ValidationIssue",
    "WorkerAdapter",
    "WorkerExecutionError",
    "WorkerFault",
    "WorkerInvocation",
    "WorkerSettings",
    "WorkerTimeoutError",
    "WorkerUnavailableError",
    "build_default_registry",
    "build_tool_manifest",
    "compile_schema",
    "manifest_to_prompt_section",
    "parse_tool_calls",
    "to_function_specs",
    "tool_declarations",
    "validate",
]
