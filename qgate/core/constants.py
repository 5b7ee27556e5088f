RULE_COMPLEXITY = "code-complexity"
RULE_FUNCTION_LENGTH = "function-length"
RULE_NAMING = "naming-conventions"
RULE_DOCUMENTATION = "documentation-coverage"
RULE_TEST_COVERAGE = "test-coverage"
RULE_SECURITY = "security-vulnerabilities"
RULE_DEPENDENCY_SECURITY = "dependency-security"
RULE_ENVIRONMENT_SECURITY = "environment-security"
RULE_PERFORMANCE = "performance-thresholds"
RULE_ACCESSIBILITY = "accessibility-compliance"
SECURITY_RULES = (RULE_SECURITY, RULE_DEPENDENCY_SECURITY, RULE_ENVIRONMENT_SECURITY)

CATEGORY_COMPLEXITY = "complexity"
CATEGORY_STRUCTURE = "structure"
CATEGORY_STYLE = "style"
CATEGORY_DOCUMENTATION = "documentation"
CATEGORY_TESTING = "testing"
CATEGORY_SECURITY = "security"
CATEGORY_DEPENDENCY_SECURITY = "dependency-security"
CATEGORY_ENVIRONMENT_SECURITY = "environment-security"
CATEGORY_PERFORMANCE = "performance"
CATEGORY_ACCESSIBILITY = "accessibility"

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"

STATUS_ERROR = "error"
STATUS_FAILED = "failed"
STATUS_EXCELLENT = "excellent"
STATUS_GOOD = "good"
STATUS_ACCEPTABLE = "acceptable"
STATUS_POOR = "poor"
STATUS_PASSED = "passed"
STATUS_WARNING = "warning"

THRESHOLD_QUALITY_SCORE = "quality-score"
THRESHOLD_ERROR_COUNT = "error-count"
THRESHOLD_PERFORMANCE_SCORE = "performance-score"

CONFIG_SCHEMA_VERSION = "1.0.0"
HISTORY_LIMIT = 100
MEASUREMENT_LIMIT = 1000
TREND_RETENTION_DAYS = 90
ERROR_PENALTY = 10
WARNING_PENALTY = 2
SUBPROCESS_TIMEOUT = 120
EXCERPT_LIMIT = 100
