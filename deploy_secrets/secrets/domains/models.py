"""Domain models for secret management."""
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

ENVIRONMENTS = ("development", "staging", "production")
ENVIRONMENT_ALIASES = {"dev": "development", "prod": "production"}
PLATFORM_IDS = ("render", "vercel", "railway")

AUDIT_ACTIONS = ("add", "remove", "rotate", "backup", "restore", "github-sync")
SEVERITIES = ("low", "medium", "high", "critical")


def normalize_environment(environment: str) -> str:
    """Map accepted aliases (``dev``, ``prod``) to canonical environment names."""
    return ENVIRONMENT_ALIASES.get(environment, environment)


@dataclass(frozen=True)
class ValidationRule:
    """Validation constraints for one secret value."""
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    forbidden_values: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class SecretDefinition:
    """One named secret inside an environment template."""
    name: str
    description: str = ""
    required: bool = False
    sensitive: bool = False
    platforms: FrozenSet[str] = frozenset(PLATFORM_IDS)
    default: Optional[str] = None
    generator: Optional[Callable[[], str]] = field(default=None, compare=False)
    validation: ValidationRule = ValidationRule()
    examples: Tuple[str, ...] = ()

    @property
    def has_generator(self) -> bool:
        return self.generator is not None

    def resolve_default(self) -> Optional[str]:
        """Return the static default, or a freshly generated value."""
        if self.default:
            return self.default
        if self.generator is not None:
            return self.generator()
        return None

    def to_dict(self) -> Dict[str, Any]:
        rule = self.validation
        return {
            "name": self.name,
            "description": self.description,
            "required": self.required,
            "sensitive": self.sensitive,
            "platforms": sorted(self.platforms),
            "default": self.default,
            "generator": self.has_generator,
            "validation": {
                "minLength": rule.min_length,
                "maxLength": rule.max_length,
                "pattern": rule.pattern,
                "forbiddenValues": sorted(rule.forbidden_values),
            },
            "examples": list(self.examples),
        }


@dataclass(frozen=True)
class Template:
    """Per-environment registry entry."""
    name: str
    description: str
    environment: str
    secrets: Tuple[SecretDefinition, ...]

    def get_secret(self, name: str) -> Optional[SecretDefinition]:
        for definition in self.secrets:
            if definition.name == name:
                return definition
        return None

    def secret_names(self) -> List[str]:
        return [definition.name for definition in self.secrets]

    def required_secrets(self) -> List[str]:
        return [d.name for d in self.secrets if d.required]

    def optional_secrets(self) -> List[str]:
        return [d.name for d in self.secrets if not d.required]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "environment": self.environment,
            "secrets": [d.to_dict() for d in self.secrets],
        }


@dataclass(frozen=True)
class PlatformConfig:
    """Deploy target and the secret names it needs."""
    name: str
    description: str
    required_secrets: Tuple[str, ...]
    optional_secrets: Tuple[str, ...] = ()
    environment_variables: Dict[str, str] = field(default_factory=dict, compare=False)


@dataclass
class AuditEntry:
    """One append-only audit log record."""
    timestamp: str
    action: str
    environment: str
    key: Optional[str] = None
    masked_value: Optional[str] = None
    file: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            timestamp=data["timestamp"],
            action=data["action"],
            environment=data.get("environment", ""),
            key=data.get("key"),
            masked_value=data.get("masked_value", data.get("value")),
            file=data.get("file"),
            details=data.get("details"),
        )


@dataclass
class Backup:
    """Snapshot of an environment's secrets with an integrity checksum."""
    environment: str
    timestamp: str
    secrets: Dict[str, str]
    checksum: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Issue:
    """A single security finding."""
    type: str
    severity: str
    message: str
    suggestion: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class CheckResult:
    """Outcome of one security check."""
    issues: List[Issue] = field(default_factory=list)
    deduction: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def add(self, issue: Issue, deduction: int) -> None:
        self.issues.append(issue)
        self.deduction += deduction

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "deduction": self.deduction,
            "details": self.details,
        }


@dataclass
class ComplianceResult:
    """Outcome of a compliance standard check."""
    status: str
    issues: List[Issue] = field(default_factory=list)
    deduction: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "issues": [i.to_dict() for i in self.issues],
            "deduction": self.deduction,
        }


@dataclass
class SecurityReport:
    """Aggregate security posture for one environment."""
    environment: str
    timestamp: str
    checks: Dict[str, CheckResult] = field(default_factory=dict)
    issues: List[Issue] = field(default_factory=list)
    compliance: Dict[str, ComplianceResult] = field(default_factory=dict)
    score: int = 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment,
            "timestamp": self.timestamp,
            "checks": {name: c.to_dict() for name, c in self.checks.items()},
            "issues": [i.to_dict() for i in self.issues],
            "compliance": {name: c.to_dict() for name, c in self.compliance.items()},
            "score": self.score,
        }


@dataclass
class Finding:
    """A hardcoded-secret scanner match."""
    file: str
    line: int
    column: int
    secret: str
    secret_type: str
    confidence: int
    suggestion: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "secret": self.secret,
            "secretType": self.secret_type,
            "confidence": self.confidence,
            "suggestion": self.suggestion,
        }


@dataclass
class AccessInfo:
    """Access scope reported by a secret store."""
    team_scope: bool
    scope: str = ""
    members: List[str] = field(default_factory=list)
    permissive: List[str] = field(default_factory=list)
