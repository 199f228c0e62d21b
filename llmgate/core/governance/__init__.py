"""Governance module: declarative risk rules and their loader.

A rule set is a list of ``{id, when, then}`` rules plus two thresholds.
Rules belong to one of four stages evaluated in strict precedence order:
self-harm, manipulation, boundary violation, then the weighted risk score.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from llmgate.core.schemas.models import PolicyAction

logger = logging.getLogger(__name__)


class RuleStage(str, Enum):
    """Evaluation stage a rule belongs to."""

    SELF_HARM = "self_harm"
    MANIPULATION = "manipulation"
    BOUNDARY = "boundary"
    RISK = "risk"


# Gate stages in precedence order; the risk stage is scored after them
GATE_STAGES: tuple[RuleStage, ...] = (
    RuleStage.SELF_HARM,
    RuleStage.MANIPULATION,
    RuleStage.BOUNDARY,
)

STAGE_DEFAULTS: dict[RuleStage, dict[str, Any]] = {
    RuleStage.SELF_HARM: {
        "action": PolicyAction.REFUSE,
        "confidence": 0.95,
        "reason": "Self-harm content detected",
    },
    RuleStage.MANIPULATION: {
        "action": PolicyAction.REFUSE,
        "confidence": 0.9,
        "reason": "Manipulation attempt detected",
    },
    RuleStage.BOUNDARY: {
        "action": PolicyAction.PUSHBACK,
        "confidence": 0.8,
        "reason": "Boundary violation detected",
    },
}

# Named pattern groups a rule may reference with ``when: {topic: ...}``
TOPIC_PATTERNS: dict[str, tuple[RuleStage, list[str]]] = {
    "self_harm": (
        RuleStage.SELF_HARM,
        [
            r"self.?harm|self.?injury",
            r"suicide|suicidal",
            r"end.*life|kill.*myself",
            r"hurt.*myself",
        ],
    ),
    "manipulation": (
        RuleStage.MANIPULATION,
        [
            r"ignore\s+(previous|all|system|instructions)",
            r"forget\s+(everything|all|previous)",
            r"you\s+are\s+now\s+(a\s+different|not)",
            r"pretend\s+to\s+be",
            r"pretend\s+you\s+are",
            r"act\s+as\s+if",
            r"roleplay\s+as",
            r"jailbreak",
            r"prompt\s+injection",
        ],
    ),
    "boundary_violation": (
        RuleStage.BOUNDARY,
        [
            r"personal\s+data|private\s+info",
            r"medical\s+advice|diagnosis",
            r"legal\s+advice|counsel",
            r"financial\s+advice|investment",
            r"relationship\s+advice\s+for\s+others",
        ],
    ),
}


class PolicyRule(BaseModel):
    """A single risk rule."""

    id: str = Field(description="Unique rule ID")
    name: str = Field(default="")
    stage: RuleStage
    patterns: list[str] = Field(min_length=1, description="Case-insensitive regexes, any may match")

    # Gate stages
    action: PolicyAction | None = Field(default=None)
    reason: str | None = Field(default=None)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    # Risk stage
    weight: float = Field(default=0.0, ge=0.0)

    _compiled: list[re.Pattern[str]] = PrivateAttr(default_factory=list)

    def model_post_init(self, __context: Any) -> None:
        # Raises re.error for an invalid pattern; the loader skips such rules
        self._compiled = [re.compile(p, re.IGNORECASE) for p in self.patterns]

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self._compiled)

    @property
    def effective_action(self) -> PolicyAction:
        return self.action or STAGE_DEFAULTS[self.stage]["action"]

    @property
    def effective_confidence(self) -> float:
        if self.confidence is not None:
            return self.confidence
        return STAGE_DEFAULTS[self.stage]["confidence"]

    @property
    def effective_reason(self) -> str:
        return self.reason or STAGE_DEFAULTS[self.stage]["reason"]


class RuleSet(BaseModel):
    """Complete, versioned set of risk rules."""

    version: str = Field(default="builtin")
    version_hash: str = Field(default="")
    source: str = Field(default="builtin", description="Where the rules were loaded from")
    escalate_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    pushback_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    rules: list[PolicyRule] = Field(default_factory=list)

    def stage_rules(self, stage: RuleStage) -> list[PolicyRule]:
        return [r for r in self.rules if r.stage == stage]

    def first_match(self, stage: RuleStage, text: str) -> PolicyRule | None:
        """First rule of a stage, in document order, that matches."""
        for rule in self.stage_rules(stage):
            if rule.matches(text):
                return rule
        return None

    def risk_score(self, text: str) -> tuple[float, list[PolicyRule]]:
        """Sum the weights of matching risk rules, clamped to [0, 1]."""
        matched = [r for r in self.stage_rules(RuleStage.RISK) if r.matches(text)]
        score = sum(r.weight for r in matched)
        return min(max(score, 0.0), 1.0), matched


# Built-in rule document. Used whenever no external rule set can be loaded;
# it still refuses self-harm and jailbreak attempts and allows ordinary traffic.
DEFAULT_RULE_DOCUMENT: dict[str, Any] = {
    "version": "builtin-1",
    "thresholds": {"escalate": 0.7, "pushback": 0.5},
    "rules": [
        {
            "id": "R001",
            "name": "Self-harm",
            "when": {"topic": "self_harm"},
            "then": {"action": "REFUSE", "reason": "Self-harm content detected"},
        },
        {
            "id": "R002",
            "name": "Instruction override",
            "when": {"topic": "manipulation"},
            "then": {"action": "REFUSE", "reason": "Manipulation attempt detected"},
        },
        {
            "id": "R003",
            "name": "Professional advice and third-party data",
            "when": {"topic": "boundary_violation"},
            "then": {"action": "PUSHBACK", "reason": "Boundary violation detected"},
        },
        {"id": "W001", "when": {"stage": "risk", "patterns": [r"ignore|forget|disregard"]}, "then": {"weight": 0.3}},
        {"id": "W002", "when": {"stage": "risk", "patterns": [r"system|admin|root"]}, "then": {"weight": 0.4}},
        {"id": "W003", "when": {"stage": "risk", "patterns": [r"prompt.?injection|jailbreak"]}, "then": {"weight": 0.8}},
        {"id": "W004", "when": {"stage": "risk", "patterns": [r"harmful|dangerous|illegal"]}, "then": {"weight": 0.6}},
        {"id": "W005", "when": {"stage": "risk", "patterns": [r"manipulate|control|influence"]}, "then": {"weight": 0.5}},
        {"id": "W006", "when": {"stage": "risk", "patterns": [r"personal.*data|private.*info"]}, "then": {"weight": 0.4}},
        {"id": "W007", "when": {"stage": "risk", "patterns": [r"bypass|circumvent|override"]}, "then": {"weight": 0.7}},
    ],
}


class RuleSetError(ValueError):
    """A rule document could not be turned into a usable rule set."""


class PolicyLoader:
    """Load rule sets from ``{id, when, then}`` documents."""

    def load_from_dict(self, raw: dict[str, Any], source: str = "dict") -> RuleSet:
        """Parse a rule document.

        Individual rules that cannot be understood are skipped with a
        warning. A document with no usable rules is rejected outright.

        Raises:
            RuleSetError: If the document is not a mapping or yields no rules
        """
        if not isinstance(raw, dict):
            raise RuleSetError(f"Rule document from {source} is not a mapping")

        raw_rules = raw.get("rules") or []
        if not isinstance(raw_rules, list):
            raise RuleSetError(f"'rules' in {source} must be a list")
        thresholds = raw.get("thresholds") or {}
        if not isinstance(thresholds, dict):
            raise RuleSetError(f"'thresholds' in {source} must be a mapping")

        rules: list[PolicyRule] = []
        for rule_data in raw_rules:
            try:
                rules.append(self._parse_rule(rule_data))
            except (KeyError, TypeError, ValueError, re.error) as e:
                rule_id = rule_data.get("id", "?") if isinstance(rule_data, dict) else "?"
                logger.warning("Skipping policy rule %s from %s: %s", rule_id, source, e)

        if not rules:
            raise RuleSetError(f"No usable rules in {source}")

        return RuleSet(
            version=str(raw.get("version", "unversioned")),
            version_hash=compute_rule_hash(raw),
            source=source,
            escalate_threshold=thresholds.get("escalate", 0.7),
            pushback_threshold=thresholds.get("pushback", 0.5),
            rules=rules,
        )

    def _parse_rule(self, data: dict[str, Any]) -> PolicyRule:
        """Parse a single rule from dict."""
        if not isinstance(data, dict):
            raise TypeError(f"Rule must be a mapping, got {type(data).__name__}")
        when = data.get("when") or {}
        then = data.get("then") or {}
        if not isinstance(when, dict) or not isinstance(then, dict):
            raise TypeError("Rule 'when' and 'then' must be mappings")
        when = dict(when)
        then = dict(then)

        topic = when.pop("topic", None)
        stage_name = when.pop("stage", None)
        raw_patterns = when.pop("patterns", []) or []
        if isinstance(raw_patterns, str):
            raw_patterns = [raw_patterns]
        patterns = list(raw_patterns)
        if "pattern" in when:
            patterns.append(when.pop("pattern"))

        if when:
            raise ValueError(f"Unsupported conditions: {sorted(when)}")

        if topic is not None:
            if topic not in TOPIC_PATTERNS:
                raise ValueError(f"Unknown topic: {topic}")
            topic_stage, topic_patterns = TOPIC_PATTERNS[topic]
            stage_name = stage_name or topic_stage.value
            patterns = topic_patterns + patterns

        if stage_name is None:
            stage_name = RuleStage.RISK.value if "weight" in then else None
        if stage_name is None:
            raise ValueError("Rule needs a stage, a topic or a weight")

        stage = RuleStage(stage_name)
        action = PolicyAction(then["action"]) if then.get("action") else None

        if stage == RuleStage.RISK:
            if "weight" not in then:
                raise ValueError("Risk rules need a weight")
        elif action == PolicyAction.ALLOW:
            raise ValueError("Gate rules cannot ALLOW")

        return PolicyRule(
            id=str(data["id"]),
            name=data.get("name", ""),
            stage=stage,
            patterns=patterns,
            action=action,
            reason=then.get("reason") or then.get("message_key"),
            confidence=then.get("confidence"),
            weight=float(then.get("weight", 0.0)),
        )


def compute_rule_hash(raw: dict[str, Any]) -> str:
    """Short content hash of a rule document, for drift detection."""
    canonical = json.dumps(raw, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]


def default_rule_set() -> RuleSet:
    """The built-in rule set."""
    return PolicyLoader().load_from_dict(DEFAULT_RULE_DOCUMENT, source="builtin")


__all__ = [
    "DEFAULT_RULE_DOCUMENT",
    "GATE_STAGES",
    "PolicyLoader",
    "PolicyRule",
    "RuleSet",
    "RuleSetError",
    "RuleStage",
    "TOPIC_PATTERNS",
    "compute_rule_hash",
    "default_rule_set",
]

# Import engine for convenience access
from llmgate.core.governance.engine import PolicyEngine  # noqa: E402

__all__ += ["PolicyEngine"]
