"""
wasm-slim: automated size reduction for Rust WebAssembly builds.

Modules:
- infra: Filesystem and command-execution capabilities
- errors: Error types
- templates: Built-in optimization templates
- profile: Template + override resolution
- config: Locations, limits and .wasm-slim.toml loading
- validation: Configuration validator registry
- backup: Byte-exact file backups
- manifest: Cargo.toml profile/wasm-opt mutation
- suggestions: Dependency fix application
- build_std: Nightly build-std configuration
- budget: Size budget evaluation
- history: Build history and regression detection
- git: Commit/branch metadata
- tools: External tool discovery
- stages: cargo / wasm-bindgen / wasm-opt / wasm-snip stages
- pipeline: End-to-end build pipeline
- report: Text and JSON output
"""

__version__ = "0.1.0"

from .errors import (
    WasmSlimError,
    IoError,
    ParseError,
    StructureError,
    TemplateNotFound,
    ToolMissing,
    ToolFailed,
    BudgetExceeded,
    InvalidConfiguration,
    InvalidBudgetConfiguration,
    PipelineError,
)

from .infra import (
    FileSystem,
    RealFileSystem,
    MemoryFileSystem,
    CommandExecutor,
    CommandResult,
    ShCommandExecutor,
)

from .templates import (
    Profile,
    BindgenSettings,
    TemplateBuilder,
    get_template,
    template_names,
)

from .profile import (
    ProfileOverrides,
    resolve,
    from_profile,
    resolve_config,
)

from .config import (
    ConfigFile,
    ConfigLoader,
)

from .validation import (
    ValidatorRegistry,
    ValidationIssue,
    ValidationSeverity,
    default_registry,
)

from .backup import (
    Backup,
    BackupManager,
)

from .manifest import ManifestEditor

from .suggestions import (
    DependencyIssue,
    DependencyReport,
    FixKind,
    SuggestionApplicator,
)

from .build_std import (
    BuildStdConfig,
    BuildStdOptimizer,
    ToolchainDetector,
)

from .budget import (
    SizeBudget,
    BudgetStatus,
    BudgetResult,
    check as check_budget,
)

from .history import (
    BuildRecord,
    BuildHistory,
    RegressionResult,
)

from .git import GitRepository

from .tools import ToolLocator

from .stages import (
    Stage,
    StageResult,
    StageRunner,
    PipelineConfig,
    WasmTarget,
    BindgenTarget,
    WasmOptLevel,
)

from .pipeline import (
    Pipeline,
    PipelineResult,
    PipelineState,
    SizeMetrics,
)

__all__ = [
    # errors
    'WasmSlimError',
    'IoError',
    'ParseError',
    'StructureError',
    'TemplateNotFound',
    'ToolMissing',
    'ToolFailed',
    'BudgetExceeded',
    'InvalidConfiguration',
    'InvalidBudgetConfiguration',
    'PipelineError',
    # infra
    'FileSystem',
    'RealFileSystem',
    'MemoryFileSystem',
    'CommandExecutor',
    'CommandResult',
    'ShCommandExecutor',
    # templates / profile
    'Profile',
    'BindgenSettings',
    'TemplateBuilder',
    'get_template',
    'template_names',
    'ProfileOverrides',
    'resolve',
    'from_profile',
    'resolve_config',
    # config
    'ConfigFile',
    'ConfigLoader',
    'ValidatorRegistry',
    'ValidationIssue',
    'ValidationSeverity',
    'default_registry',
    # mutation
    'Backup',
    'BackupManager',
    'ManifestEditor',
    'DependencyIssue',
    'DependencyReport',
    'FixKind',
    'SuggestionApplicator',
    'BuildStdConfig',
    'BuildStdOptimizer',
    'ToolchainDetector',
    # budgets / history
    'SizeBudget',
    'BudgetStatus',
    'BudgetResult',
    'check_budget',
    'BuildRecord',
    'BuildHistory',
    'RegressionResult',
    'GitRepository',
    # pipeline
    'ToolLocator',
    'Stage',
    'StageResult',
    'StageRunner',
    'PipelineConfig',
    'WasmTarget',
    'BindgenTarget',
    'WasmOptLevel',
    'Pipeline',
    'PipelineResult',
    'PipelineState',
    'SizeMetrics',
]
