"""In-place prompt refinement driven by failure patterns."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from rich.console import Console

from .analysis import FailureCategory, FailurePatterns
from .config import FocusWeightsConfig

NO_CHANGES = "no meaningful changes applied"


@dataclass(frozen=True)
class RefinementRule:
    """Strengthens the first template line matching ``pattern``.

    The matched line has its soft wording hardened and ``addition`` appended.
    Once ``addition`` appears in a template the rule is considered applied and
    leaves the template alone.
    """

    change_type: str
    description: str
    pattern: str
    addition: str

    def apply(self, template: str) -> Tuple[str, Optional[str]]:
        if self.addition.lower() in template.lower():
            return template, None
        match = re.search(self.pattern, template, re.IGNORECASE | re.MULTILINE)
        if match is None:
            return template, None
        original = match.group(0)
        rewritten = _harden(original.rstrip())
        if rewritten and rewritten[-1] not in ".!?:":
            rewritten += "."
        rewritten = f"{rewritten} {self.addition}"
        return template[: match.start()] + rewritten + template[match.end():], original.strip()


_SOFT_WORDING = [
    (re.compile(r"\bshould\b", re.IGNORECASE), "must"),
    (re.compile(r"\btry to\s+", re.IGNORECASE), ""),
    (re.compile(r"\s*\bif possible\b", re.IGNORECASE), ""),
]


def _harden(line: str) -> str:
    for pattern, replacement in _SOFT_WORDING:
        line = pattern.sub(replacement, line)
    return line


TOOL_USAGE = RefinementRule(
    "tool_usage",
    "tightened tool-usage instruction",
    r"^.*\b(?:use|call|invoke)\b.*\btools?\b.*$",
    "Call the tool first and confirm its result to the customer.",
)
TOOL_GUARD = RefinementRule(
    "tool_guard",
    "required a successful tool call before confirming items",
    r"^.*\btools?\b.*$",
    "Never say an item was added unless the tool call succeeded.",
)
CONFIDENCE_THRESHOLD = RefinementRule(
    "confidence_threshold",
    "added a confidence threshold for product matching",
    r"^.*\b(?:products?|items?|menu)\b.*$",
    "Only add an item when you are confident it is the product asked for; otherwise confirm the exact name first.",
)
DISAMBIGUATION = RefinementRule(
    "disambiguation",
    "added a disambiguation step for similar products",
    r"^.*\b(?:clarify|ask|confirm)\w*\b.*$",
    "When several products could match (such as roti kaya and roti john), list the options and let the customer choose.",
)
ACKNOWLEDGEMENT = RefinementRule(
    "acknowledgement",
    "required explicit acknowledgement of each request",
    r"^.*\b(?:respond|reply|replies|answer|greet)\w*\b.*$",
    "Acknowledge every request and restate what changed in the order.",
)
FLOW_RECOVERY = RefinementRule(
    "flow_recovery",
    "added recovery guidance for failed steps",
    r"^.*\b(?:customer|order)s?\b.*$",
    "If a step fails, say so briefly and keep the order moving instead of apologising repeatedly.",
)
PAYMENT_PROMPT = RefinementRule(
    "payment_prompt",
    "required stating the total and asking for a payment method at checkout",
    r"^.*\b(?:pay|payment|checkout|total)\w*\b.*$",
    "When the customer says they are done (including 'habis' or 'sudah'), state the total and ask how they would like to pay.",
)
PAYMENT_CONFIRMATION = RefinementRule(
    "payment_confirmation",
    "required confirming payment with a receipt",
    r"^.*\b(?:pay|payment|cash|card)\w*\b.*$",
    "After the customer names a payment method, process it and confirm the payment with a receipt.",
)
PERSONALITY = RefinementRule(
    "personality",
    "reinforced the persona",
    r"^.*\b(?:you are|personality|tone|style|friendly)\b.*$",
    "Stay in character with short, warm, local phrasing.",
)

CATEGORY_RULES: Dict[FailureCategory, List[RefinementRule]] = {
    FailureCategory.TOOL_CALL_ERRORS: [TOOL_USAGE, TOOL_GUARD],
    FailureCategory.ITEM_MISMATCH: [CONFIDENCE_THRESHOLD, DISAMBIGUATION],
    FailureCategory.CONVERSATION_FLOW: [ACKNOWLEDGEMENT, FLOW_RECOVERY],
    FailureCategory.PAYMENT_FLOW: [PAYMENT_PROMPT, PAYMENT_CONFIRMATION],
}

CATEGORY_FOCUS: Dict[FailureCategory, str] = {
    FailureCategory.TOOL_CALL_ERRORS: "tool_selection_accuracy",
    FailureCategory.ITEM_MISMATCH: "information_completeness",
    FailureCategory.CONVERSATION_FLOW: "contextual_appropriateness",
    FailureCategory.PAYMENT_FLOW: "payment_flow_completion",
}

# Applied one per generation when there are no failures to learn from.
GENERIC_PROGRESSION: List[Tuple[RefinementRule, str]] = [
    (TOOL_USAGE, "tool_selection_accuracy"),
    (ACKNOWLEDGEMENT, "contextual_appropriateness"),
    (PAYMENT_PROMPT, "payment_flow_completion"),
    (CONFIDENCE_THRESHOLD, "information_completeness"),
    (PERSONALITY, "personality_authenticity"),
    (DISAMBIGUATION, "information_completeness"),
    (PAYMENT_CONFIRMATION, "payment_flow_completion"),
]


class ChangeTracker:
    """Ordered log of ``(change_type, description)`` edits."""

    def __init__(self) -> None:
        self.changes: List[Tuple[str, str]] = []

    def record(self, change_type: str, description: str) -> None:
        self.changes.append((change_type, description))

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def summary(self) -> str:
        if not self.changes:
            return NO_CHANGES
        return "; ".join(f"{change_type}: {description}" for change_type, description in self.changes)


@dataclass
class Refinement:
    template: str
    tracker: ChangeTracker
    categories: List[FailureCategory] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def changed(self) -> bool:
        return self.tracker.has_changes

    @property
    def summary(self) -> str:
        return self.tracker.summary()


class PromptRefiner:
    def __init__(self, *, console: Optional[Console] = None):
        self.console = console or Console()

    def refine(
        self,
        template: str,
        patterns: Optional[FailurePatterns],
        generation: int,
        focus_weights: Optional[FocusWeightsConfig] = None,
    ) -> Refinement:
        weights = (focus_weights or FocusWeightsConfig()).as_dict()
        categories = self._prioritise(patterns, weights)
        tracker = ChangeTracker()
        try:
            if patterns is not None and not patterns.is_empty:
                refined = template
                for category in categories:
                    for rule in CATEGORY_RULES[category]:
                        refined = self._apply(rule, refined, tracker, scope=category.value)
            else:
                refined = self._apply_generic(template, generation, weights, tracker)
        except Exception as exc:  # noqa: BLE001
            self.console.log(f"[yellow]Prompt refinement failed, adding focus note instead: {exc}")
            return self._fallback(template, categories, generation)
        return Refinement(template=refined, tracker=tracker, categories=categories)

    @staticmethod
    def _prioritise(patterns: Optional[FailurePatterns], weights: Dict[str, float]) -> List[FailureCategory]:
        if patterns is None:
            return []
        ranked = [
            category
            for category in patterns.categories
            if weights.get(CATEGORY_FOCUS[category], 0.0) > 0.0
        ]
        ranked.sort(key=lambda category: weights[CATEGORY_FOCUS[category]], reverse=True)
        return ranked

    def _apply_generic(
        self, template: str, generation: int, weights: Dict[str, float], tracker: ChangeTracker
    ) -> str:
        rule, focus = GENERIC_PROGRESSION[max(0, generation - 2) % len(GENERIC_PROGRESSION)]
        if weights.get(focus, 0.0) <= 0.0:
            return template
        return self._apply(rule, template, tracker, scope=f"generic step {generation}")

    @staticmethod
    def _apply(rule: RefinementRule, template: str, tracker: ChangeTracker, *, scope: str) -> str:
        refined, matched_line = rule.apply(template)
        if matched_line is not None:
            tracker.record(rule.change_type, f"{rule.description} [{scope}] in '{matched_line[:60]}'")
        return refined

    @staticmethod
    def _fallback(template: str, categories: List[FailureCategory], generation: int) -> Refinement:
        focus = ", ".join(category.value for category in categories) or "general accuracy"
        annotated = f"{template.rstrip()}\n\n## TRAINING FOCUS (generation {generation})\n- Focus on: {focus}\n"
        tracker = ChangeTracker()
        tracker.record("fallback_annotation", f"appended focus note for {focus}")
        return Refinement(template=annotated, tracker=tracker, categories=categories, used_fallback=True)
