"""Pattern tables for the hardcoded-secret scanner."""
import re
from typing import List, Pattern, Tuple

_I = re.IGNORECASE

# Ordered: when several patterns match at the same offset the first one wins.
SECRET_PATTERNS: List[Tuple[str, Pattern]] = [
    # API keys and tokens
    ("api_key", re.compile(
        r"(?:api[_-]?key|apikey|access[_-]?key|accesskey)\s*[:=]\s*['\"]([a-zA-Z0-9_-]{20,})['\"]", _I)),
    ("api_secret", re.compile(
        r"(?:api[_-]?secret|apisecret|secret[_-]?key|secretkey)\s*[:=]\s*['\"]([a-zA-Z0-9_-]{20,})['\"]", _I)),
    ("auth_token", re.compile(
        r"(?:bearer[_-]?token|bearertoken|auth[_-]?token|authtoken)\s*[:=]\s*['\"]([a-zA-Z0-9_-]{20,})['\"]", _I)),
    # Database URLs
    ("database_url", re.compile(
        r"(?:database[_-]?url|dburl|databaseurl)\s*[:=]\s*['\"]"
        r"(postgresql://|postgres://|mysql://|mongodb://|sqlite://)([^'\"]+)['\"]", _I)),
    ("database_connection", re.compile(
        r"(?:database[_-]?connection|dbconnection|databaseconnection)\s*[:=]\s*['\"]"
        r"(postgresql://|postgres://|mysql://|mongodb://|sqlite://)([^'\"]+)['\"]", _I)),
    # Password assignments
    ("password", re.compile(r"(?:password|pwd|pass)\s*[:=]\s*['\"]([^'\"]{8,})['\"]", _I)),
    ("secret_assignment", re.compile(r"(?:secret|pwd|pass)\s*[:=]\s*['\"]([^'\"]{8,})['\"]", _I)),
    # JWT signing secrets
    ("jwt_secret", re.compile(
        r"(?:jwt[_-]?secret|jwtsecret|token[_-]?secret|tokensecret)\s*[:=]\s*['\"]([a-zA-Z0-9_-]{20,})['\"]", _I)),
    # AWS credentials
    ("aws_access_key", re.compile(
        r"(?:aws[_-]?access[_-]?key|awsaccesskey)\s*[:=]\s*['\"]([A-Z0-9]{20,})['\"]", _I)),
    ("aws_secret_key", re.compile(
        r"(?:aws[_-]?secret[_-]?key|awssecretkey|aws[_-]?secret[_-]?access[_-]?key|awssecretaccesskey)"
        r"\s*[:=]\s*['\"]([a-zA-Z0-9/+=]{20,})['\"]", _I)),
    # Generic quoted blobs and upper-case key ids
    ("quoted_blob", re.compile(r"['\"]([a-zA-Z0-9/+=]{20,})['\"]", _I)),
    ("uppercase_id", re.compile(r"\b[A-Z0-9]{20,}\b")),
    # Well-known provider prefixes
    ("provider_prefix", re.compile(r"(?:sk_live_|sk_test_|pk_live_|pk_test_|whsec_|sk_|pk_)[a-zA-Z0-9/+=_-]{20,}")),
    # Long hex and base64 runs
    ("hex", re.compile(r"\b(?:0x)?[a-fA-F0-9]{32,}\b")),
    ("base64", re.compile(r"(?:[A-Za-z0-9+/]{4}){10,}(?:[A-Za-z0-9+/]{3}=|[A-Za-z0-9+/]{2}==)?")),
]

# A match containing any of these (case-insensitive) is discarded.
FALSE_POSITIVES = (
    "undefined", "null", "true", "false",
    "localhost", "127.0.0.1", "0.0.0.0", "example.com", "test.com",
    "localhost:3000", "http://localhost", "https://localhost",
    "webpack", "babel", "eslint", "prettier", "node_modules", "package.json",
    "README", "TODO", "FIXME", "DEBUG", "INFO", "WARN", "ERROR",
    # hex placeholders
    "ffffffff", "00000000", "1234567890abcdef", "abcdef1234567890",
    # demo base64 strings
    "YmFzZTY0IGVuY29kZWQg", "dGVzdCBzdHJpbmc=", "c2VjcmV0IGRhdGE=",
    # jwt.io sample header and payload
    "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9",
    "eyJzdWIiOiIxMjM0NTY3ODkwIiwibmFtZSI6IkpvaG4gRG9lIiwiaWF0IjoxNTE2MjM5MDIyfQ",
)

# (type, all-of keywords, any-of keywords); first row that matches wins.
SECRET_TYPE_RULES = (
    ("API Key", ("api", "key"), ()),
    ("Secret Token", (), ("secret", "token")),
    ("Password", (), ("password", "pwd")),
    ("Database URL", (), ("database", "db")),
    ("AWS Credential", ("aws", "key"), ()),
    ("JWT Token", (), ("jwt",)),
    ("Solana RPC", (), ("solana", "rpc")),
    ("Redis URL", (), ("redis", "cache")),
    ("Email Credential", (), ("email", "smtp")),
    ("Cloudflare Token", (), ("cloudflare", "cdn")),
    ("IPFS Token", (), ("pinata", "ipfs")),
    ("Google Analytics", ("google", "analytics"), ()),
    ("Mixpanel Token", (), ("mixpanel",)),
    ("Sentry DSN", (), ("sentry",)),
    ("Datadog API Key", (), ("datadog",)),
)
UNKNOWN_TYPE = "Unknown"

# Types whose matched text is masked in reports.
MASKED_TYPES = frozenset({"Password", "Secret Token", "API Key", "AWS Credential"})

SUGGESTIONS = {
    "API Key": "Use environment variable: API_KEY or create appropriate secret variable",
    "Secret Token": "Use environment variable: SECRET_TOKEN or create appropriate secret variable",
    "Password": "Use environment variable: PASSWORD or create appropriate secret variable",
    "Database URL": "Use environment variable: DATABASE_URL",
    "AWS Credential": "Use environment variables: AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY",
    "JWT Token": "Use environment variable: JWT_SECRET",
    "Solana RPC": "Use environment variable: SOLANA_RPC_URL",
    "Redis URL": "Use environment variable: REDIS_URL",
    "Email Credential": "Use environment variables: EMAIL_HOST, EMAIL_USER, EMAIL_PASS",
    "Cloudflare Token": "Use environment variable: CLOUDFLARE_API_TOKEN",
    "IPFS Token": "Use environment variables: PINATA_API_KEY and PINATA_SECRET_API_KEY",
    "Google Analytics": "Use environment variable: GOOGLE_ANALYTICS_ID",
    "Mixpanel Token": "Use environment variable: MIXPANEL_TOKEN",
    "Sentry DSN": "Use environment variable: SENTRY_DSN",
    "Datadog API Key": "Use environment variable: DATADOG_API_KEY",
}
DEFAULT_SUGGESTION = "Move to environment variable"

FILE_EXTENSIONS = frozenset({
    ".js", ".ts", ".jsx", ".tsx", ".mjs", ".cjs", ".json",
    ".py", ".yml", ".yaml", ".toml", ".env",
})

EXCLUDE_DIRS = frozenset({
    "node_modules", "dist", "build", ".git", "coverage", ".next", ".vercel",
    "__pycache__", ".venv", "venv", ".tox", ".pytest_cache", ".mypy_cache",
})

CONFIDENCE_BASE = 10
HIGH_ENTROPY_SHAPE = re.compile(r"^[a-zA-Z0-9/+=_-]{20,}$")
UPPERCASE_SHAPE = re.compile(r"^[A-Z0-9]{20,}$")
