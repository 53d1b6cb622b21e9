"""
Diagram Syntax Normalizer

Best-effort repair of generated Mermaid source before it reaches a renderer.

Fixed application order:
1. Strip surrounding ``` / ```mermaid fences
2. Correct the header keyword (hallucinated or miscased diagram types)
3. Run the ordered rule list of the detected dialect

Every rule is idempotent and only runs when its precondition pattern is found.
Source the normalizer cannot improve is passed through unchanged; a rule that
raises is logged and skipped.
"""

import re
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Pattern, Set, Tuple

from ..config.settings import RendererConfig, get_config
from ..models.content_models import DiagramDialect, DiagramDocument, NormalizationResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiagramRule:
    """A named rewrite that runs only when `pattern` is found in the source."""
    name: str
    pattern: Pattern[str]
    rewrite: Callable[[str], str]


# ============================================
# Header keywords
# ============================================

# lower-cased keyword -> keyword the renderer accepts
HEADER_KEYWORDS: Dict[str, str] = {
    "graph": "graph",
    "flowchart": "flowchart",
    "flow": "flowchart",
    "flowdiagram": "flowchart",
    "flowchart-elk": "flowchart",
    "classdiagram": "classDiagram",
    "classdiagram-v2": "classDiagram",
    "umlclassdiagram": "classDiagram",
    "objectdiagram": "classDiagram",
    "erdiagram": "erDiagram",
    "erd": "erDiagram",
    "entityrelationshipdiagram": "erDiagram",
    "sequencediagram": "sequenceDiagram",
    "sequence": "sequenceDiagram",
    "statediagram": "stateDiagram-v2",
    "statediagram-v2": "stateDiagram-v2",
    "statemachine": "stateDiagram-v2",
    "mindmap": "mindmap",
}

# Valid headers of diagram types without repair rules
OTHER_HEADERS = {
    "gantt", "pie", "journey", "timeline", "gitgraph", "quadrantchart",
    "requirementdiagram", "c4context", "c4container", "c4component",
    "sankey-beta", "xychart-beta", "block-beta", "packet-beta",
    "architecture-beta", "kanban",
}

HEADER_DIALECTS: Dict[str, DiagramDialect] = {
    "graph": DiagramDialect.FLOWCHART,
    "flowchart": DiagramDialect.FLOWCHART,
    "classDiagram": DiagramDialect.CLASS,
    "erDiagram": DiagramDialect.ER,
    "sequenceDiagram": DiagramDialect.SEQUENCE,
    "stateDiagram-v2": DiagramDialect.STATE,
    "mindmap": DiagramDialect.MINDMAP,
}

FENCE_MARKER_PATTERN = re.compile(r"```[ \t]*(?:mermaid)?", re.IGNORECASE)
HEADER_TOKEN_PATTERN = re.compile(r"^([ \t]*)([A-Za-z][\w-]*)")
DEFAULT_GRAPH_HEADER = "graph LR"


def _is_directive(line: str) -> bool:
    return line.lstrip().startswith("%%")


def _first_significant_line(lines: List[str]) -> Optional[int]:
    """Index of the first line that is neither blank nor a %% directive/comment."""
    for index, line in enumerate(lines):
        if line.strip() and not _is_directive(line):
            return index
    return None


def _header_token(source: str) -> Tuple[List[str], Optional[int], Optional[re.Match]]:
    lines = source.split("\n")
    index = _first_significant_line(lines)
    if index is None:
        return lines, None, None
    return lines, index, HEADER_TOKEN_PATTERN.match(lines[index])


def detect_dialect(source: str) -> DiagramDialect:
    """Sniff the dialect from the first significant token (case-insensitive)."""
    _, _, match = _header_token(source or "")
    if match is None:
        return DiagramDialect.UNKNOWN
    keyword = HEADER_KEYWORDS.get(match.group(2).lower())
    return HEADER_DIALECTS.get(keyword, DiagramDialect.UNKNOWN)


# ============================================
# Line helpers
# ============================================

def _map_lines(func: Callable[[str], str]) -> Callable[[str], str]:
    """Apply `func` to every line except %% directives and comments."""
    def rewrite(source: str) -> str:
        return "\n".join(
            line if _is_directive(line) else func(line)
            for line in source.split("\n")
        )
    return rewrite


ENTITY_OPEN_PATTERN = re.compile(r"\{[ \t]*$")


def _map_entity_attributes(func: Callable[[str], str]) -> Callable[[str], str]:
    """Apply `func` to attribute lines inside `ENTITY { ... }` bodies."""
    def rewrite(source: str) -> str:
        output = []
        in_body = False
        for line in source.split("\n"):
            stripped = line.strip()
            if _is_directive(line) or not stripped:
                output.append(line)
            elif in_body:
                if stripped.startswith("}"):
                    in_body = False
                    output.append(line)
                else:
                    output.append(func(line))
            else:
                output.append(line)
                in_body = bool(ENTITY_OPEN_PATTERN.search(line))
        return "\n".join(output)
    return rewrite


def _indent_of(line: str) -> str:
    return line[:len(line) - len(line.lstrip())]


def _flatten_identifier(name: str) -> str:
    return re.sub(r"\W+", "_", name.strip()).strip("_")


# ============================================
# Class diagram rules
# ============================================

GROUPING_KEYWORD_PATTERN = re.compile(r"^([ \t]*)(?:package|module)\b", re.MULTILINE | re.IGNORECASE)

BLOCK_MARKER_PATTERN = re.compile(r"\}[ \t]*\S|\{[ \t]*(?:class|interface|abstract|enum)\b")
CLOSE_THEN_TEXT_PATTERN = re.compile(r"\}[ \t]*(?=\S)")
OPEN_THEN_CLASS_PATTERN = re.compile(r"\{[ \t]*(?=(?:class|interface|abstract|enum)\b)")

# class "Order Item" / interface Order Item { / namespace "Domain Model" {
SPACED_DECLARATION_PATTERN = re.compile(
    r'^([ \t]*(?:class|namespace|interface|abstract[ \t]+class|abstract|enum)[ \t]+)'
    r'(?!class\b)("([^"\n]+)"|[A-Za-z_]\w*(?:[ \t]+[A-Za-z_]\w*)+)'
    r'(?=[ \t]*(?:\{|~|<<|:::|$))',
    re.MULTILINE | re.IGNORECASE,
)

CLASS_KEYWORD_LINE_PATTERN = re.compile(r"^[ \t]*(?:class|namespace|interface|abstract|enum)\b", re.IGNORECASE)
RELATION_ARROW_PATTERN = re.compile(r"<\|--|--\|>|\*--|--\*|o--|--o|-->|<--|\.\.>|<\.\.|\.\.\|>|<\|\.\.|--|\.\.")
DOTTED_NAME_PATTERN = re.compile(r"(?<![\w.])[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)+")

STEREOTYPE_DECLARATION_PATTERN = re.compile(
    r"^(?P<indent>[ \t]*)(?P<keyword>interface|abstract[ \t]+class|abstract|enum)[ \t]+"
    r"(?P<name>[^\s{]+)[ \t]*(?P<brace>\{)?(?P<rest>[^\n]*)$",
    re.MULTILINE | re.IGNORECASE,
)
STEREOTYPES = {
    "interface": "interface",
    "abstract": "abstract",
    "enum": "enumeration",
}
STEREOTYPE_NEXT_LINE_PATTERN = re.compile(r"\n[ \t]*<<")
NAMESPACE_LINE_PATTERN = re.compile(r"^[ \t]*namespace\b", re.IGNORECASE)
QUOTED_TEXT_PATTERN = re.compile(r'"[^"\n]*"')


def _class_body_lines(source: str) -> Set[int]:
    """Indices of the lines inside a class body. Namespace bodies do not count."""
    inside: Set[int] = set()
    blocks: List[bool] = []  # True for namespace blocks
    for index, line in enumerate(source.split("\n")):
        if blocks and not blocks[-1]:
            inside.add(index)
        if _is_directive(line):
            continue
        is_namespace = bool(NAMESPACE_LINE_PATTERN.match(line))
        for char in QUOTED_TEXT_PATTERN.sub("", line):
            if char == "{":
                blocks.append(is_namespace)
            elif char == "}" and blocks:
                blocks.pop()
    return inside


def _sub_declarations(pattern: Pattern[str], replace: Callable[[re.Match], str], source: str) -> str:
    """`pattern.sub` that leaves member lines of class bodies untouched."""
    members = _class_body_lines(source)

    def guarded(match: re.Match) -> str:
        if source.count("\n", 0, match.start()) in members:
            return match.group(0)
        return replace(match)

    return pattern.sub(guarded, source)


def _rename_grouping(source: str) -> str:
    return GROUPING_KEYWORD_PATTERN.sub(r"\1namespace", source)


def _split_block_markers(line: str) -> str:
    line = CLOSE_THEN_TEXT_PATTERN.sub("}\n", line)
    return OPEN_THEN_CLASS_PATTERN.sub("{\n", line)


def _flatten_spaced_identifiers(source: str) -> str:
    renamed: Dict[str, str] = {}

    def declare(match: re.Match) -> str:
        raw = match.group(3) if match.group(3) is not None else match.group(2)
        flat = _flatten_identifier(raw)
        renamed[raw] = flat
        return match.group(1) + flat

    source = _sub_declarations(SPACED_DECLARATION_PATTERN, declare, source)

    def rename_references(line: str) -> str:
        if not RELATION_ARROW_PATTERN.search(line):
            return line
        head, sep, tail = line.partition(":")
        for raw, flat in renamed.items():
            head = head.replace(f'"{raw}"', flat)
            if " " in raw:
                head = re.sub(r"\b" + r"\s+".join(map(re.escape, raw.split())) + r"\b", flat, head)
        return head + sep + tail

    return _map_lines(rename_references)(source) if renamed else source


def _flatten_dotted_names(line: str) -> str:
    if not (CLASS_KEYWORD_LINE_PATTERN.match(line) or RELATION_ARROW_PATTERN.search(line)):
        return line
    head, sep, tail = line.partition(":")
    head = DOTTED_NAME_PATTERN.sub(lambda m: m.group(0).replace(".", "_"), head)
    return head + sep + tail


def _declare_stereotypes(source: str) -> str:
    def declare(match: re.Match) -> str:
        indent = match.group("indent")
        name = match.group("name")
        rest = match.group("rest").strip()
        keyword = match.group("keyword").split()[0].lower()
        marker = f"<<{STEREOTYPES[keyword]}>>"

        if match.group("brace"):
            line = f"{indent}class {name} {{"
            already_marked = STEREOTYPE_NEXT_LINE_PATTERN.match(match.string, match.end())
            if not rest.startswith("<<") and not already_marked:
                line += f"\n{indent}  {marker}"
            if rest:
                line += f"\n{indent}  {rest}"
            return line

        line = f"{indent}class {name}"
        if rest:
            line += f" {rest}"
        if "<<" not in rest:
            line += f"\n{indent}{marker} {name}"
        return line

    return _sub_declarations(STEREOTYPE_DECLARATION_PATTERN, declare, source)


def class_rules() -> List[DiagramRule]:
    return [
        DiagramRule("class_namespace_grouping", GROUPING_KEYWORD_PATTERN, _rename_grouping),
        DiagramRule("class_block_newlines", BLOCK_MARKER_PATTERN, _map_lines(_split_block_markers)),
        DiagramRule("class_spaced_identifiers", SPACED_DECLARATION_PATTERN, _flatten_spaced_identifiers),
        DiagramRule("class_dotted_names", DOTTED_NAME_PATTERN, _map_lines(_flatten_dotted_names)),
        DiagramRule("class_stereotypes", STEREOTYPE_DECLARATION_PATTERN, _declare_stereotypes),
    ]


# ============================================
# Flowchart rules
# ============================================

# A[label with space] -- skips [[..]], [(..)], [/../], [\..\] and already quoted labels
SQUARE_LABEL = r'(?<=\w)\[(?![\[(/\\"])(?P<square>[^\[\]"\n]*[\s(){}][^\[\]"\n]*)\](?!\])'
# A(label with space) -- skips ((..)), ([..]) and already quoted labels
ROUND_LABEL = r'(?<=\w)\((?![(\["])(?P<round>[^()\[\]"\n]*\s[^()\[\]"\n]*)\)(?!\))'
UNQUOTED_LABEL_PATTERN = re.compile(SQUARE_LABEL + "|" + ROUND_LABEL)
# Quoted text is consumed first so nothing inside it is rewritten
LABEL_SCAN_PATTERN = re.compile(r'"[^"\n]*"|' + SQUARE_LABEL + "|" + ROUND_LABEL)
MISSING_INIT_PATTERN = re.compile(r"\A(?![\s\S]*%%\{\s*init)")


def _quote_label(match: re.Match) -> str:
    if match.group("square") is not None:
        return f'["{match.group("square").strip()}"]'
    if match.group("round") is not None:
        return f'("{match.group("round").strip()}")'
    return match.group(0)


def _quote_labels(line: str) -> str:
    """Quote each square or round node label once, in a single left-to-right scan."""
    return LABEL_SCAN_PATTERN.sub(_quote_label, line)


def flowchart_rules(init_directive: str) -> List[DiagramRule]:
    return [
        DiagramRule("flowchart_quote_labels", UNQUOTED_LABEL_PATTERN, _map_lines(_quote_labels)),
        DiagramRule(
            "flowchart_init_directive",
            MISSING_INIT_PATTERN,
            lambda source: f"{init_directive}\n{source}",
        ),
    ]


# ============================================
# Entity-relationship rules
# ============================================

KEY_MARKERS = ("PK", "FK", "UK")
KEY_FRAGMENT_PATTERN = re.compile(r'(?:PK|FK|UK)(?:[ \t]+"[^"]*")?')

SQL_CONSTRAINT_PATTERN = re.compile(
    r"\b(?:PRIMARY\s+KEY|FOREIGN\s+KEY|REFERENCES|UNIQUE|NOT\s+NULL|NULL|AUTO_?INCREMENT|DEFAULT)\b",
    re.IGNORECASE,
)
DEFAULT_VALUE_PATTERN = re.compile(r"""\bDEFAULT\s+(?:'[^']*'|"[^"]*"|\([^)]*\)|[^\s,]+)""", re.IGNORECASE)
REFERENCES_PATTERN = re.compile(r"\bREFERENCES\s+\w+(?:\s*\([^)]*\))?", re.IGNORECASE)
PRIMARY_KEY_PATTERN = re.compile(r"\bPRIMARY\s+KEY\b", re.IGNORECASE)
FOREIGN_KEY_PATTERN = re.compile(r"\bFOREIGN\s+KEY\b", re.IGNORECASE)
UNIQUE_PATTERN = re.compile(r"\bUNIQUE\b", re.IGNORECASE)
DROPPED_CONSTRAINT_PATTERN = re.compile(r"\b(?:NOT\s+NULL|NULL|AUTO_?INCREMENT|DEFAULT)\b", re.IGNORECASE)
TRAILING_COMMENT_PATTERN = re.compile(r'^(.*?)\s*("[^"]*")\s*$')
ATTRIBUTE_TOKEN_PATTERN = re.compile(r"\w+\([^)]*\)|[^\s,]+")

BARE_ATTRIBUTE_PATTERN = re.compile(
    r'^([ \t]*)([A-Za-z_][\w-]*)'
    r'((?:[ \t]+(?:PK|FK|UK)(?:[ \t]*,[ \t]*(?:PK|FK|UK))*)?(?:[ \t]+"[^"\n]*")?)[ \t]*$'
)
BARE_ATTRIBUTE_SEARCH_PATTERN = re.compile(BARE_ATTRIBUTE_PATTERN.pattern, re.MULTILINE)


def _split_attribute_line(line: str) -> str:
    """Split `int id, string name` into one attribute per line."""
    if "," not in line:
        return line

    indent = _indent_of(line)
    parts: List[str] = []
    current: List[str] = []
    in_quotes = False
    depth = 0

    for char in line.strip():
        if char == '"':
            in_quotes = not in_quotes
        elif not in_quotes and char == "(":
            depth += 1
        elif not in_quotes and char == ")":
            depth = max(depth - 1, 0)
        elif char == "," and not in_quotes and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    parts.append("".join(current))

    merged: List[str] = []
    for part in parts:
        part = part.strip()
        if not part:
            continue
        # "PK, FK" key lists stay with their attribute
        if merged and KEY_FRAGMENT_PATTERN.fullmatch(part):
            merged[-1] = f"{merged[-1]}, {part}"
        else:
            merged.append(part)

    if not merged:
        return line
    return "\n".join(indent + part for part in merged)


def _strip_sql_constraints(line: str) -> str:
    if not SQL_CONSTRAINT_PATTERN.search(line):
        return line

    indent = _indent_of(line)
    text = DEFAULT_VALUE_PATTERN.sub(" ", line.strip())

    comment = ""
    match = TRAILING_COMMENT_PATTERN.match(text)
    if match:
        text, comment = match.group(1), match.group(2)

    text = REFERENCES_PATTERN.sub(" FK ", text)
    text = PRIMARY_KEY_PATTERN.sub(" PK ", text)
    text = FOREIGN_KEY_PATTERN.sub(" FK ", text)
    text = UNIQUE_PATTERN.sub(" UK ", text)
    text = DROPPED_CONSTRAINT_PATTERN.sub(" ", text)

    words: List[str] = []
    keys: List[str] = []
    for token in ATTRIBUTE_TOKEN_PATTERN.findall(text):
        if token.upper() in KEY_MARKERS:
            if token.upper() not in keys:
                keys.append(token.upper())
        else:
            words.append(token)

    rebuilt = " ".join(words)
    if keys:
        rebuilt += " " + ", ".join(keys)
    if comment:
        rebuilt += " " + comment
    return indent + rebuilt.strip()


def _default_attribute_type(line: str) -> str:
    return BARE_ATTRIBUTE_PATTERN.sub(r"\1string \2\3", line)


def er_rules() -> List[DiagramRule]:
    return [
        DiagramRule("er_split_attributes", re.compile(","), _map_entity_attributes(_split_attribute_line)),
        DiagramRule("er_sql_constraints", SQL_CONSTRAINT_PATTERN, _map_entity_attributes(_strip_sql_constraints)),
        DiagramRule(
            "er_default_attribute_type",
            BARE_ATTRIBUTE_SEARCH_PATTERN,
            _map_entity_attributes(_default_attribute_type),
        ),
    ]


# ============================================
# Sequence and mindmap rules
# ============================================

AUTONUMBER_PATTERN = re.compile(r"^([ \t]*)auto[-_ ]?number\b", re.MULTILINE | re.IGNORECASE)
MINDMAP_INLINE_ROOT_PATTERN = re.compile(r"^([ \t]*)mindmap[ \t]+(\S[^\n]*)$", re.MULTILINE)


def _root_on_own_line(source: str) -> str:
    """Move an inline mindmap root to its own line, one level above every child."""
    match = MINDMAP_INLINE_ROOT_PATTERN.search(source)
    header_index = _first_significant_line(source.split("\n"))
    if match is None or source.count("\n", 0, match.start()) != header_index:
        return source
    indent = match.group(1)
    body = "\n".join(
        f"  {line}" if line.strip() else line
        for line in source[match.end():].split("\n")
    )
    return f"{source[:match.start()]}{indent}mindmap\n{indent}  {match.group(2)}{body}"


def sequence_rules() -> List[DiagramRule]:
    return [
        DiagramRule(
            "sequence_autonumber",
            AUTONUMBER_PATTERN,
            lambda source: AUTONUMBER_PATTERN.sub(r"\1autonumber", source),
        ),
    ]


def mindmap_rules() -> List[DiagramRule]:
    return [
        DiagramRule(
            "mindmap_root_newline",
            MINDMAP_INLINE_ROOT_PATTERN,
            _root_on_own_line,
        ),
    ]


def default_rules(config: RendererConfig) -> Dict[DiagramDialect, List[DiagramRule]]:
    return {
        DiagramDialect.CLASS: class_rules(),
        DiagramDialect.FLOWCHART: flowchart_rules(config.flowchart_init_directive),
        DiagramDialect.ER: er_rules(),
        DiagramDialect.SEQUENCE: sequence_rules(),
        DiagramDialect.MINDMAP: mindmap_rules(),
        DiagramDialect.STATE: [],
        DiagramDialect.UNKNOWN: [],
    }


# ============================================
# Normalizer
# ============================================

class DiagramNormalizer:
    """
    Dialect-aware repair of generated Mermaid source.

    Usage:
        normalizer = DiagramNormalizer()
        corrected = normalizer.normalize(source)
        result = normalizer.normalize_document(source)   # with applied rule names
    """

    def __init__(self, config: Optional[RendererConfig] = None):
        self.config = config or get_config()
        self.rules = default_rules(self.config)

    def add_rule(self, dialect: DiagramDialect, rule: DiagramRule):
        """Append a rule to the end of a dialect's rule list."""
        self.rules.setdefault(dialect, []).append(rule)

    def analyze(self, source: str) -> DiagramDocument:
        cleaned, _ = self._strip_fences(source or "")
        cleaned, _ = self._correct_header(cleaned)
        return DiagramDocument(source=source or "", dialect=detect_dialect(cleaned))

    def normalize(self, source: str) -> str:
        return self.normalize_document(source).corrected

    def normalize_document(self, source: str) -> NormalizationResult:
        original = source or ""
        applied: List[str] = []

        corrected, changed = self._strip_fences(original)
        if changed:
            applied.append("strip_fences")

        corrected, header_rule = self._correct_header(corrected)
        if header_rule:
            applied.append(header_rule)

        dialect = detect_dialect(corrected)
        corrected = self._apply_rules(corrected, self.rules.get(dialect, []), applied)

        if applied:
            logger.debug(f"[DIAGRAM] {dialect.value}: applied {', '.join(applied)}")

        return NormalizationResult(
            original=original,
            corrected=corrected,
            dialect=dialect,
            applied_rules=applied,
        )

    @staticmethod
    def _strip_fences(source: str) -> Tuple[str, bool]:
        text = source.replace("\r\n", "\n")
        stripped = FENCE_MARKER_PATTERN.sub("", text)
        return stripped.strip(), stripped != text

    @staticmethod
    def _correct_header(source: str) -> Tuple[str, Optional[str]]:
        lines, index, match = _header_token(source)
        if index is None:
            return source, None

        if match is not None:
            keyword = match.group(2)
            canonical = HEADER_KEYWORDS.get(keyword.lower())
            if canonical is not None:
                if canonical == keyword:
                    return source, None
                lines[index] = match.group(1) + canonical + lines[index][match.end():]
                return "\n".join(lines), "header_keyword"
            if keyword.lower() in OTHER_HEADERS:
                return source, None

        # Headerless edge list
        if "-->" in source:
            lines.insert(index, DEFAULT_GRAPH_HEADER)
            return "\n".join(lines), "default_graph_header"
        return source, None

    @staticmethod
    def _apply_rules(source: str, rules: List[DiagramRule], applied: List[str]) -> str:
        for rule in rules:
            if not rule.pattern.search(source):
                continue
            try:
                updated = rule.rewrite(source)
            except Exception as e:
                logger.warning(f"[DIAGRAM] Rule {rule.name} failed and was skipped: {e}")
                continue
            if updated != source:
                applied.append(rule.name)
                source = updated
        return source
