"""
Step plans embedded in agent instructions.

An agent's instructions may carry one XML block describing an execution plan::

    <steps>
      <step number="1" action="run_once" agent="Researcher">
        <prompt>Collect the facts about {topic}.</prompt>
      </step>
      <step number="2" action="loop">
        <prompt>Refine the draft.</prompt>
      </step>
    </steps>

Only the first ``<steps>`` block is honored; any later block stays in the
instruction text verbatim. Step numbers are unique and steps run in ascending
``number`` order.
"""

from __future__ import annotations

import enum
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from ..core.Exceptions import ParseError

logger = logging.getLogger(__name__)

__all__ = [
    "StepAction",
    "Step",
    "Steps",
    "extract_steps_block",
    "parse_steps",
    "split_instructions",
]

_OPEN_TAG: re.Pattern[str] = re.compile(r"<steps(?=[\s/>])[^>]*>")
_BLOCK: re.Pattern[str] = re.compile(r"<steps(?=[\s/>])[^>]*>.*?</steps\s*>", re.DOTALL)


class StepAction(str, enum.Enum):
    RUN_ONCE = "run_once"
    LOOP = "loop"


@dataclass(frozen=True, slots=True)
class Step:
    number: int
    action: StepAction
    prompt: str
    agent: Optional[str] = None

    @property
    def is_loop(self) -> bool:
        return self.action is StepAction.LOOP


@dataclass(frozen=True, slots=True)
class Steps:
    """An ordered, validated step plan. Empty when instructions carry no block."""
    steps: Tuple[Step, ...] = field(default_factory=tuple)

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def __bool__(self) -> bool:
        return bool(self.steps)

    @property
    def numbers(self) -> List[int]:
        return [s.number for s in self.steps]


def extract_steps_block(text: str) -> Tuple[str, Optional[str]]:
    """
    Split ``text`` into (text without the first steps block, that block).

    Returns ``(text, None)`` when there is no block. Raises :class:`ParseError`
    when an opening ``<steps>`` tag is never closed.
    """
    if not text:
        return text or "", None

    opening = _OPEN_TAG.search(text)
    if opening is None:
        return text, None

    if opening.group(0).rstrip().endswith("/>"):
        start, end = opening.span()
    else:
        block = _BLOCK.search(text, opening.start())
        if block is None or block.start() != opening.start():
            raise ParseError("unterminated <steps> tag", fragment=text[opening.start():opening.start() + 80])
        start, end = block.span()

    remaining = (text[:start] + text[end:]).strip()
    return remaining, text[start:end]


def parse_steps(block: Optional[str]) -> Steps:
    """Parse a ``<steps>`` block into a validated :class:`Steps` plan."""
    if block is None or not block.strip():
        return Steps()

    try:
        root = ET.fromstring(block.strip())
    except ET.ParseError as exc:
        raise ParseError(f"malformed XML: {exc}", fragment=block) from exc
    if root.tag != "steps":
        raise ParseError(f"expected <steps> root element, got <{root.tag}>", fragment=block)

    parsed: List[Step] = []
    seen: set[int] = set()
    for elem in root.iter("step"):
        raw_number = (elem.get("number") or "").strip()
        try:
            number = int(raw_number)
        except ValueError:
            raise ParseError(f"step number must be an integer, got {raw_number!r}") from None
        if number <= 0:
            raise ParseError(f"step number must be positive, got {number}")
        if number in seen:
            raise ParseError(f"duplicate step number {number}")
        seen.add(number)

        raw_action = (elem.get("action") or "").strip()
        try:
            action = StepAction(raw_action)
        except ValueError:
            raise ParseError(f"unknown action {raw_action!r} in step {number}") from None

        prompt_elem = elem.find("prompt")
        prompt = "".join(prompt_elem.itertext()).strip() if prompt_elem is not None else ""
        if not prompt:
            raise ParseError(f"step {number} is missing a non-empty <prompt>")

        agent = (elem.get("agent") or "").strip() or None
        parsed.append(Step(number=number, action=action, prompt=prompt, agent=agent))

    ordered = tuple(sorted(parsed, key=lambda s: s.number))
    logger.debug("parse_steps: %d step(s) %s", len(ordered), [s.number for s in ordered])
    return Steps(ordered)


def split_instructions(text: str) -> Tuple[str, Steps]:
    """Return the instruction text without its step block, and the parsed plan."""
    remaining, block = extract_steps_block(text)
    return remaining, parse_steps(block)
