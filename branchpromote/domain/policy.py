"""
Promotion policy for branchpromote.

The policy is a declarative, ordered rule table mapping branch names to
a target environment, credential set and descriptor path. Evaluation is
first match wins. A branch that satisfies both an exact rule and a
prefix rule resolves by rule ORDER, not by specificity: keep exact
names ahead of patterns when composing a table.

Matcher syntax:
    "main"              exact branch name
    "release/*"         glob pattern (fnmatch, '*' also spans '/')
    "re:^feature/.+$"   regular expression (re.fullmatch)
"""

import fnmatch
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..exceptions import InvalidInput, PolicyRejected

REGEX_PREFIX = 're:'
GLOB_CHARS = ('*', '?', '[')


class Environment(Enum):
    """Deployment target environments."""
    DEV = "dev"
    UAT = "uat"
    PROD = "prod"

    @classmethod
    def parse(cls, value: str) -> 'Environment':
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ', '.join(e.value for e in cls)
            raise InvalidInput(f"Unknown environment '{value}' (expected one of: {valid})")


@dataclass(frozen=True)
class PromotionRule:
    """
    One row of the promotion table.

    Attributes:
        match: Branch matcher (exact name, glob, or "re:" regex)
        environment: Target environment
        credential_set_id: Opaque reference to the environment's credentials
        descriptor_path: Deployment descriptor for the environment
        namespace: Runtime namespace used when waiting for rollout
        resource: Deployed resource name (None uses the configured default)
    """

    match: str
    environment: Environment
    credential_set_id: str
    descriptor_path: str
    namespace: Optional[str] = None
    resource: Optional[str] = None

    def __post_init__(self):
        if not self.match or not self.match.strip():
            raise InvalidInput("Promotion rule has an empty matcher")
        if self.kind == 'regex':
            try:
                re.compile(self.match[len(REGEX_PREFIX):])
            except re.error as e:
                raise InvalidInput(f"Invalid rule pattern '{self.match}': {e}")

    @property
    def kind(self) -> str:
        """Matcher kind: 'exact', 'glob' or 'regex'."""
        if self.match.startswith(REGEX_PREFIX):
            return 'regex'
        if any(ch in self.match for ch in GLOB_CHARS):
            return 'glob'
        return 'exact'

    def matches(self, branch: str) -> bool:
        """Check whether this rule accepts the branch (case-sensitive)."""
        kind = self.kind
        if kind == 'exact':
            return branch == self.match
        if kind == 'glob':
            return fnmatch.fnmatchcase(branch, self.match)
        return re.fullmatch(self.match[len(REGEX_PREFIX):], branch) is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PromotionRule':
        """Build a rule from its config mapping."""
        missing = [k for k in ('match', 'environment', 'credential_set', 'descriptor') if not data.get(k)]
        if missing:
            raise InvalidInput(f"Promotion rule {data!r} is missing: {', '.join(missing)}")
        return cls(
            match=str(data['match']),
            environment=Environment.parse(data['environment']),
            credential_set_id=str(data['credential_set']),
            descriptor_path=str(data['descriptor']),
            namespace=data.get('namespace'),
            resource=data.get('resource'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'match': self.match,
            'kind': self.kind,
            'environment': self.environment.value,
            'credential_set': self.credential_set_id,
            'descriptor': self.descriptor_path,
        }
        if self.namespace:
            result['namespace'] = self.namespace
        if self.resource:
            result['resource'] = self.resource
        return result


@dataclass(frozen=True)
class PromotionDecision:
    """
    Result of evaluating a branch against the promotion table.

    Immutable once produced; threaded through the orchestrator.
    """

    proceed: bool
    branch: str
    reason: str
    environment: Optional[Environment] = None
    credential_set_id: Optional[str] = None
    descriptor_path: Optional[str] = None
    namespace: Optional[str] = None
    resource: Optional[str] = None
    matched_rule: Optional[str] = None

    def require(self) -> None:
        """
        Raise PolicyRejected unless the branch may be promoted.

        Rejection is terminal for the run and never retried.
        """
        if not self.proceed:
            raise PolicyRejected(self.branch, self.reason)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            'proceed': self.proceed,
            'branch': self.branch,
            'reason': self.reason,
        }
        if self.environment:
            result['environment'] = self.environment.value
        for key in ('credential_set_id', 'descriptor_path', 'namespace', 'resource', 'matched_rule'):
            value = getattr(self, key)
            if value:
                result[key] = value
        return result


def evaluate(branch: str, rules: Sequence[PromotionRule]) -> PromotionDecision:
    """
    Evaluate a branch against an ordered rule table.

    The first matching rule wins. If nothing matches, the decision has
    proceed=False and a reason an operator can act on.

    Args:
        branch: Resolved branch name
        rules: Ordered promotion rules

    Returns:
        PromotionDecision
    """
    for rule in rules:
        if rule.matches(branch):
            return PromotionDecision(
                proceed=True,
                branch=branch,
                reason=f"Branch '{branch}' matched rule '{rule.match}' -> {rule.environment.value}",
                environment=rule.environment,
                credential_set_id=rule.credential_set_id,
                descriptor_path=rule.descriptor_path,
                namespace=rule.namespace or rule.environment.value,
                resource=rule.resource,
                matched_rule=rule.match,
            )

    patterns = ', '.join(rule.match for rule in rules) or '(none)'
    return PromotionDecision(
        proceed=False,
        branch=branch,
        reason=f"Branch '{branch}' is not covered by any promotion rule (rules: {patterns})",
    )


def rules_from_config(config: Dict[str, Any]) -> List[PromotionRule]:
    """
    Parse the ordered rule table from configuration.

    Raises:
        InvalidInput: If the table is missing or a rule is malformed
    """
    raw_rules = config.get('rules')
    if not isinstance(raw_rules, list):
        raise InvalidInput("Configuration 'rules' must be a list of promotion rules")
    rules = []
    for raw in raw_rules:
        if not isinstance(raw, dict):
            raise InvalidInput(f"Promotion rule must be a mapping, got {raw!r}")
        rules.append(PromotionRule.from_dict(raw))
    return rules


@dataclass
class ShadowedRule:
    """An exact rule that an earlier pattern rule always captures."""
    rule: PromotionRule
    shadowed_by: PromotionRule
    index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'match': self.rule.match,
            'shadowed_by': self.shadowed_by.match,
            'environment': self.rule.environment.value,
            'effective_environment': self.shadowed_by.environment.value,
        }


def shadowed_rules(rules: Iterable[PromotionRule]) -> List[ShadowedRule]:
    """
    Find exact-name rules that can never fire because an earlier rule
    already matches the same branch name.
    """
    rules = list(rules)
    found = []
    for index, rule in enumerate(rules):
        if rule.kind != 'exact':
            continue
        for earlier in rules[:index]:
            if earlier.matches(rule.match):
                found.append(ShadowedRule(rule=rule, shadowed_by=earlier, index=index))
                break
    return found
