"""Parse model output into action requests.

Two wire formats are understood. The namespaced format, which is the one the
system prompt teaches::

    <function_calls>
    <invoke name="Read">
    <parameter name="file_path">notes.txt</parameter>
    </invoke>
    </function_calls>

and the legacy flat format still produced by older prompts::

    <tool_calls>
    <tool_call>
    <tool_name>Read</tool_name>
    <parameters><path>notes.txt</path></parameters>
    </tool_call>
    </tool_calls>

Tags of the namespaced format may carry an XML namespace prefix
(``<ns:invoke ...>``). When a namespaced block is present anywhere in a
response the legacy format is not attempted for that response, so a reply
mixing both formats only yields the namespaced actions.
"""

import re
from dataclasses import dataclass, field

from ollamacode.actions import ARGUMENT_ALIASES, ActionRequest, resolve_argument
from ollamacode.logging import get_logger

log = get_logger(__name__)

NAMESPACED_FORMAT = "namespaced"
LEGACY_FORMAT = "legacy"

_NS = r"(?:[A-Za-z_][\w.-]*:)?"

_NAMESPACED_OPEN_RE = re.compile(rf"<{_NS}function_calls\s*>")
_NAMESPACED_CLOSE_RE = re.compile(rf"</{_NS}function_calls\s*>")
_INVOKE_OPEN_RE = re.compile(rf"<{_NS}invoke\b")
_INVOKE_HEAD_RE = re.compile(rf"<{_NS}invoke\s+name\s*=\s*\"([^\"]*)\"\s*>")
_INVOKE_CLOSE_RE = re.compile(rf"</{_NS}invoke\s*>")
_PARAM_OPEN_RE = re.compile(rf"<{_NS}parameter\b")
_PARAM_HEAD_RE = re.compile(rf"<{_NS}parameter\s+name\s*=\s*\"([^\"]*)\"\s*>")
_PARAM_CLOSE_RE = re.compile(rf"</{_NS}parameter\s*>")

_LEGACY_OPEN = "<tool_calls>"
_LEGACY_CLOSE = "</tool_calls>"
_LEGACY_ELEMENT_RE = re.compile(r"<([A-Za-z_][\w.-]*)>(.*?)</\1>", re.DOTALL)


@dataclass
class ParseResult:
    """Actions found in one model response plus the text meant for the user."""

    actions: list[ActionRequest] = field(default_factory=list)
    residual_text: str = ""
    format: str | None = None

    @property
    def has_block_markers(self) -> bool:
        return self.format is not None

    @property
    def is_malformed(self) -> bool:
        """Block markers were present but no valid unit could be parsed."""
        return self.has_block_markers and not self.actions


def _block_spans(
    text: str,
    open_re: re.Pattern[str],
    close_re: re.Pattern[str],
) -> list[tuple[int, int, int, int]]:
    """Locate outer blocks as (start, body_start, body_end, end) spans.

    An unterminated block runs to the end of the text.
    """
    spans: list[tuple[int, int, int, int]] = []
    pos = 0
    while True:
        opened = open_re.search(text, pos)
        if opened is None:
            break
        closed = close_re.search(text, opened.end())
        if closed is None:
            spans.append((opened.start(), opened.end(), len(text), len(text)))
            break
        spans.append((opened.start(), opened.end(), closed.start(), closed.end()))
        pos = closed.end()
    return spans


def _literal_spans(text: str, open_tag: str, close_tag: str) -> list[tuple[int, int, int, int]]:
    return _block_spans(text, re.compile(re.escape(open_tag)), re.compile(re.escape(close_tag)))


def _parse_parameters(unit_body: str) -> dict[str, str]:
    """Extract ``<parameter name="...">value</parameter>`` pairs in order."""
    parameters: dict[str, str] = {}
    pos = 0
    while True:
        opened = _PARAM_OPEN_RE.search(unit_body, pos)
        if opened is None:
            break
        next_open = _PARAM_OPEN_RE.search(unit_body, opened.end())
        limit = next_open.start() if next_open else len(unit_body)
        head = _PARAM_HEAD_RE.match(unit_body, opened.start())
        closed = _PARAM_CLOSE_RE.search(unit_body, head.end()) if head else None
        if head is None or closed is None or closed.start() > limit or not head.group(1):
            # malformed parameter; resume at the next one
            pos = limit
            continue
        parameters[head.group(1)] = unit_body[head.end():closed.start()].strip()
        pos = closed.end()
    return parameters


def _parse_namespaced_block(body: str) -> list[ActionRequest]:
    actions: list[ActionRequest] = []
    pos = 0
    while True:
        opened = _INVOKE_OPEN_RE.search(body, pos)
        if opened is None:
            break
        next_open = _INVOKE_OPEN_RE.search(body, opened.end())
        limit = next_open.start() if next_open else len(body)
        head = _INVOKE_HEAD_RE.match(body, opened.start())
        closed = _INVOKE_CLOSE_RE.search(body, head.end()) if head else None
        if head is None or closed is None or closed.start() > limit:
            log.debug("Skipping malformed invoke unit", offset=opened.start())
            pos = limit
            continue
        name = head.group(1).strip()
        pos = closed.end()
        if not name:
            log.debug("Skipping unnamed invoke unit", offset=opened.start())
            continue
        actions.append(ActionRequest(
            name=name,
            arguments=_parse_parameters(body[head.end():closed.start()]),
        ))
    return actions


def _parse_legacy_unit(unit: str) -> ActionRequest | None:
    name = ""
    parameters_block = ""
    for match in _LEGACY_ELEMENT_RE.finditer(unit):
        tag = match.group(1)
        if tag == "tool_name" and not name:
            name = match.group(2).strip()
        elif tag == "parameters" and not parameters_block:
            parameters_block = match.group(2)
    if not name:
        return None

    arguments: dict[str, str] = {}
    for match in _LEGACY_ELEMENT_RE.finditer(parameters_block):
        value = match.group(2).strip()
        if value and match.group(1) not in arguments:
            arguments[match.group(1)] = value

    for canonical in ARGUMENT_ALIASES:
        if arguments.get(canonical):
            continue
        value = resolve_argument(arguments, canonical)
        if value:
            arguments[canonical] = value
    return ActionRequest(name=name, arguments=arguments)


def _parse_legacy_block(body: str) -> list[ActionRequest]:
    actions: list[ActionRequest] = []
    for match in re.finditer(r"<tool_call>(.*?)</tool_call>", body, re.DOTALL):
        action = _parse_legacy_unit(match.group(1))
        if action is None:
            log.debug("Skipping legacy tool_call without tool_name")
            continue
        actions.append(action)
    return actions


def _strip_spans(text: str, spans: list[tuple[int, int, int, int]]) -> str:
    if not spans:
        return text
    pieces: list[str] = []
    pos = 0
    for start, _, _, end in spans:
        pieces.append(text[pos:start])
        pos = end
    pieces.append(text[pos:])
    return "".join(pieces)


def collapse_text(text: str) -> str:
    """Drop blank lines and trim every remaining line."""
    lines = [line.strip() for line in text.strip().splitlines()]
    return "\n".join(line for line in lines if line).strip()


class ActionParser:
    """Turn raw model output into ``ActionRequest`` objects."""

    def has_block_markers(self, response: str) -> bool:
        text = response or ""
        return bool(_NAMESPACED_OPEN_RE.search(text)) or _LEGACY_OPEN in text

    def extract_response_text(self, response: str) -> str:
        """Return the response with every action block removed."""
        text = response or ""
        if not self.has_block_markers(text):
            return text.strip()
        stripped = _strip_spans(text, _block_spans(text, _NAMESPACED_OPEN_RE, _NAMESPACED_CLOSE_RE))
        stripped = _strip_spans(stripped, _literal_spans(stripped, _LEGACY_OPEN, _LEGACY_CLOSE))
        return collapse_text(stripped)

    def parse(self, response: str) -> ParseResult:
        """Parse a model response. Never raises on malformed input."""
        text = response or ""
        residual = self.extract_response_text(text)

        namespaced = _block_spans(text, _NAMESPACED_OPEN_RE, _NAMESPACED_CLOSE_RE)
        if namespaced:
            actions = [
                action
                for _, body_start, body_end, _ in namespaced
                for action in _parse_namespaced_block(text[body_start:body_end])
            ]
            log.debug("Parsed namespaced actions", count=len(actions), blocks=len(namespaced))
            return ParseResult(actions=actions, residual_text=residual, format=NAMESPACED_FORMAT)

        legacy = _literal_spans(text, _LEGACY_OPEN, _LEGACY_CLOSE)
        if legacy:
            actions = [
                action
                for _, body_start, body_end, _ in legacy
                for action in _parse_legacy_block(text[body_start:body_end])
            ]
            log.debug("Parsed legacy actions", count=len(actions), blocks=len(legacy))
            return ParseResult(actions=actions, residual_text=residual, format=LEGACY_FORMAT)

        return ParseResult(actions=[], residual_text=residual, format=None)


def parse_actions(response: str) -> ParseResult:
    """Module-level convenience wrapper around ``ActionParser.parse``."""
    return ActionParser().parse(response)
