"""Policy engine: classify a request into allow / refuse / pushback / escalate.

Evaluation is a pure function of the prompt text and the active rule set.
The rule set can be reloaded from a JSON or YAML file at runtime; a failed
load never leaves the engine without rules.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

import yaml

from llmgate.core.governance import (
    GATE_STAGES,
    PolicyLoader,
    PolicyRule,
    RuleSet,
    RuleSetError,
    default_rule_set,
)
from llmgate.core.schemas.models import OrchestrationRequest, PolicyAction, PolicyDecision

logger = logging.getLogger(__name__)

ESCALATE_REASON = "High risk score requires human review"
ESCALATE_CONFIDENCE = 0.85
PUSHBACK_REASON = "Moderate risk requires clarification"
PUSHBACK_CONFIDENCE = 0.8


class PolicyEngine:
    """Evaluates requests against the active rule set.

    Precedence is fixed: self-harm, then manipulation, then boundary
    violation, then the weighted risk score. The first stage that matches
    decides; later stages are not consulted.
    """

    def __init__(
        self,
        rules_path: str | Path | None = None,
        reload_interval: float = 30.0,
        rule_set: RuleSet | None = None,
    ):
        """Initialize the engine.

        Args:
            rules_path: Optional JSON/YAML rule file, watched for changes
            reload_interval: Minimum seconds between file modification checks
            rule_set: Explicit rule set, used instead of the file and defaults
        """
        self._rules_path = Path(rules_path) if rules_path else None
        self._reload_interval = reload_interval
        self._loader = PolicyLoader()
        self._last_check = time.monotonic()
        self._loaded_mtime: float | None = None

        if rule_set is not None:
            self._rule_set = rule_set
        else:
            self._rule_set = default_rule_set()
            if self._rules_path is not None:
                self.reload()

    @property
    def rule_set(self) -> RuleSet:
        return self._rule_set

    # =========================================================================
    # Loading
    # =========================================================================

    def _read_document(self, path: Path) -> dict[str, Any]:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)

    def reload(self) -> dict[str, Any]:
        """Reload rules from the configured file.

        On any failure the currently active rule set stays in place. At
        startup that is the built-in default set.

        Returns:
            Dict with reload status and the active version hash
        """
        if self._rules_path is None:
            return {
                "reloaded": False,
                "reason": "No rules path configured",
                "version_hash": self._rule_set.version_hash,
            }

        try:
            mtime = self._rules_path.stat().st_mtime
            raw = self._read_document(self._rules_path)
            rule_set = self._loader.load_from_dict(raw, source=str(self._rules_path))
        except (OSError, ValueError, yaml.YAMLError) as e:
            # json.JSONDecodeError and RuleSetError are ValueErrors
            logger.warning(
                "Policy reload failed, keeping rule set %s (%s): %s",
                self._rule_set.version_hash,
                self._rule_set.source,
                e,
            )
            return {
                "reloaded": False,
                "reason": str(e),
                "version_hash": self._rule_set.version_hash,
            }

        previous = self._rule_set.version_hash
        self._rule_set = rule_set
        self._loaded_mtime = mtime
        logger.info(
            "Policy rules loaded: source=%s version=%s hash=%s rules=%d",
            rule_set.source,
            rule_set.version,
            rule_set.version_hash,
            len(rule_set.rules),
        )
        return {
            "reloaded": True,
            "previous_hash": previous,
            "version_hash": rule_set.version_hash,
            "rule_count": len(rule_set.rules),
        }

    def maybe_reload(self) -> bool:
        """Reload if the rule file changed since the last load.

        The file is stat'ed at most once per reload interval.
        """
        if self._rules_path is None:
            return False

        now = time.monotonic()
        if now - self._last_check < self._reload_interval:
            return False
        self._last_check = now

        try:
            mtime = self._rules_path.stat().st_mtime
        except OSError:
            return False
        if mtime == self._loaded_mtime:
            return False

        return bool(self.reload()["reloaded"])

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, request: OrchestrationRequest) -> PolicyDecision:
        """Classify a request.

        Never raises for any prompt text; always returns a decision.
        """
        self.maybe_reload()
        rule_set = self._rule_set
        text = request.prompt or ""

        for stage in GATE_STAGES:
            rule = rule_set.first_match(stage, text)
            if rule is not None:
                return self._gate_decision(rule)

        score, matched = rule_set.risk_score(text)
        rule_ids = [r.id for r in matched]

        if score > rule_set.escalate_threshold:
            return PolicyDecision(
                action=PolicyAction.ESCALATE,
                reasons=[ESCALATE_REASON],
                confidence=ESCALATE_CONFIDENCE,
                escalation_required=True,
                human_review_required=True,
                risk_score=score,
                rule_ids=rule_ids,
            )
        if score > rule_set.pushback_threshold:
            return PolicyDecision(
                action=PolicyAction.PUSHBACK,
                reasons=[PUSHBACK_REASON],
                confidence=PUSHBACK_CONFIDENCE,
                risk_score=score,
                rule_ids=rule_ids,
            )
        return PolicyDecision(
            action=PolicyAction.ALLOW,
            reasons=[],
            confidence=1.0,
            risk_score=score,
            rule_ids=rule_ids,
        )

    def _gate_decision(self, rule: PolicyRule) -> PolicyDecision:
        action = rule.effective_action
        escalate = action == PolicyAction.ESCALATE
        return PolicyDecision(
            action=action,
            reasons=[rule.effective_reason],
            confidence=rule.effective_confidence,
            escalation_required=escalate,
            human_review_required=escalate,
            risk_score=0.0,
            rule_ids=[rule.id],
        )


__all__ = ["PolicyEngine", "RuleSetError"]
