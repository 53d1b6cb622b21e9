"""
Tests for the Diagram Syntax Normalizer

Header correction, per-dialect repair rules, rule bookkeeping and
idempotence of the whole pass.
"""

import re

import pytest

from content_renderer.config.settings import DEFAULT_FLOWCHART_INIT
from content_renderer.models.content_models import DiagramDialect
from content_renderer.services.diagram_normalizer import (
    DiagramNormalizer,
    DiagramRule,
    detect_dialect,
)


@pytest.fixture
def normalizer(config):
    return DiagramNormalizer(config)


class TestClassDiagram:
    """Class diagram repairs."""

    def test_interface_block_gets_stereotype(self, normalizer):
        source = "classDiagram\ninterface Shape {\n  +area() float\n}"
        result = normalizer.normalize_document(source)

        assert result.corrected == "classDiagram\nclass Shape {\n  <<interface>>\n  +area() float\n}"
        assert result.applied_rules == ["class_stereotypes"]
        assert result.dialect == DiagramDialect.CLASS

    def test_interface_without_body(self, normalizer):
        corrected = normalizer.normalize("classDiagram\ninterface Shape")
        assert corrected == "classDiagram\nclass Shape\n<<interface>> Shape"

    @pytest.mark.parametrize("declaration,stereotype", [
        ("abstract class Animal {", "<<abstract>>"),
        ("abstract Animal {", "<<abstract>>"),
        ("enum Color {", "<<enumeration>>"),
    ])
    def test_other_stereotypes(self, normalizer, declaration, stereotype):
        corrected = normalizer.normalize(f"classDiagram\n{declaration}\n  RED\n}}")
        lines = corrected.split("\n")

        assert lines[1].startswith("class ")
        assert lines[2].strip() == stereotype

    def test_existing_stereotype_is_not_duplicated(self, normalizer):
        source = "classDiagram\ninterface Shape {\n  <<interface>>\n  +area() float\n}"
        corrected = normalizer.normalize(source)

        assert corrected.count("<<interface>>") == 1
        assert "class Shape {" in corrected

    def test_package_becomes_namespace(self, normalizer):
        result = normalizer.normalize_document("classDiagram\npackage Shapes {\n  class Circle\n}")

        assert result.corrected == "classDiagram\nnamespace Shapes {\n  class Circle\n}"
        assert result.applied_rules == ["class_namespace_grouping"]

    def test_dotted_names_are_flattened(self, normalizer):
        corrected = normalizer.normalize("classDiagram\ncom.shop.Order --> com.shop.Item : contains")
        assert corrected == "classDiagram\ncom_shop_Order --> com_shop_Item : contains"

    def test_quoted_identifier_and_references(self, normalizer):
        source = 'classDiagram\nclass "Order Item" {\n  +int qty\n}\nCustomer --> "Order Item"'
        result = normalizer.normalize_document(source)

        assert "class Order_Item {" in result.corrected
        assert "Customer --> Order_Item" in result.corrected
        assert "class_spaced_identifiers" in result.applied_rules

    def test_closing_brace_splits_from_next_declaration(self, normalizer):
        source = "classDiagram\nclass A {\n  +x\n} class B {\n  +y\n}"
        assert normalizer.normalize(source) == "classDiagram\nclass A {\n  +x\n}\nclass B {\n  +y\n}"

    def test_spaced_interface_name_is_flattened_before_stereotype(self, normalizer):
        source = "classDiagram\ninterface Order Item {\n  +place()\n}\nCustomer --> Order Item"
        result = normalizer.normalize_document(source)

        assert result.corrected == (
            "classDiagram\nclass Order_Item {\n  <<interface>>\n  +place()\n}\nCustomer --> Order_Item"
        )
        assert result.applied_rules == ["class_spaced_identifiers", "class_stereotypes"]

    def test_quoted_enum_name(self, normalizer):
        corrected = normalizer.normalize('classDiagram\nenum "Order Status"')
        assert corrected == "classDiagram\nclass Order_Status\n<<enumeration>> Order_Status"

    def test_abstract_class_keyword_is_not_part_of_name(self, normalizer):
        corrected = normalizer.normalize("classDiagram\nabstract class Animal {\n  +eat()\n}")
        assert corrected == "classDiagram\nclass Animal {\n  <<abstract>>\n  +eat()\n}"

    def test_member_lines_are_not_declarations(self, normalizer):
        source = "classDiagram\nclass Shape {\n  abstract area() double\n  enum Kind kind\n}"
        result = normalizer.normalize_document(source)

        assert result.corrected == source
        assert result.applied_rules == []

    def test_namespace_members_are_declarations(self, normalizer):
        source = "classDiagram\nnamespace Shapes {\n  interface Drawable\n}"
        corrected = normalizer.normalize(source)

        assert corrected == "classDiagram\nnamespace Shapes {\n  class Drawable\n  <<interface>> Drawable\n}"
        assert normalizer.normalize(source) == "classDiagram\nclass A {\n  +x\n}\nclass B {\n  +y\n}"


class TestFlowchart:
    """Flowchart label quoting and init directive."""

    def test_labels_with_spaces_are_quoted(self, normalizer):
        source = "graph TD\nA[Start here] --> B(Do work)\nB --> C[End]"
        result = normalizer.normalize_document(source)

        assert result.corrected == (
            DEFAULT_FLOWCHART_INIT + '\ngraph TD\nA["Start here"] --> B("Do work")\nB --> C[End]'
        )
        assert result.applied_rules == ["flowchart_quote_labels", "flowchart_init_directive"]

    def test_parentheses_inside_square_label(self, normalizer):
        result = normalizer.normalize_document("graph TD\nA[Call printf(x, y)] --> B")

        assert result.corrected.split("\n")[-1] == 'A["Call printf(x, y)"] --> B'
        assert "flowchart_quote_labels" in result.applied_rules

    def test_quoted_labels_are_not_rewritten(self, normalizer):
        source = 'graph TD\nA["Call printf(x, y)"] --> B("Do (more) work")'
        result = normalizer.normalize_document(source)

        assert result.corrected.endswith(source)
        assert "flowchart_quote_labels" not in result.applied_rules

    def test_special_shapes_are_left_alone(self, normalizer):
        source = "graph TD\nA[(Data base)] --> B[[Sub routine]] --> C((Big circle)) --> D[/In put/]"
        corrected = normalizer.normalize(source)

        assert corrected.endswith(source)
        assert "flowchart_quote_labels" not in normalizer.normalize_document(source).applied_rules

    def test_init_directive_is_injected_once(self, normalizer):
        once = normalizer.normalize("flowchart LR\nA --> B")
        twice = normalizer.normalize(once)

        assert once == twice
        assert twice.count("%%{init") == 1

    def test_existing_init_directive_is_kept(self, normalizer):
        source = "%%{init: {'theme': 'dark'}}%%\ngraph LR\nA --> B"
        assert normalizer.normalize(source) == source

    def test_headerless_edge_list_gets_graph_header(self, normalizer):
        result = normalizer.normalize_document("A --> B\nB --> C")

        assert result.corrected == DEFAULT_FLOWCHART_INIT + "\ngraph LR\nA --> B\nB --> C"
        assert result.applied_rules == ["default_graph_header", "flowchart_init_directive"]
        assert result.dialect == DiagramDialect.FLOWCHART


class TestHeaders:
    """Fence stripping and header keyword correction."""

    @pytest.mark.parametrize("source,header,dialect", [
        ("flowChart TD\nA --> B", "flowchart TD", DiagramDialect.FLOWCHART),
        ("ClassDiagram\nclass A", "classDiagram", DiagramDialect.CLASS),
        ("erd\nA ||--o{ B : has", "erDiagram", DiagramDialect.ER),
        ("sequence\nA->>B: hi", "sequenceDiagram", DiagramDialect.SEQUENCE),
        ("stateDiagram\n[*] --> Idle", "stateDiagram-v2", DiagramDialect.STATE),
    ])
    def test_header_keyword_is_corrected(self, normalizer, source, header, dialect):
        result = normalizer.normalize_document(source)

        assert result.applied_rules[0] == "header_keyword"
        assert result.dialect == dialect
        assert header in result.corrected.split("\n")

    def test_fences_are_stripped(self, normalizer):
        result = normalizer.normalize_document("```mermaid\nsequenceDiagram\nA->>B: hi\n```")

        assert result.corrected == "sequenceDiagram\nA->>B: hi"
        assert result.applied_rules == ["strip_fences"]

    def test_unknown_diagram_passes_through(self, normalizer):
        result = normalizer.normalize_document("gantt\ntitle Plan")

        assert result.corrected == "gantt\ntitle Plan"
        assert result.applied_rules == []
        assert result.dialect == DiagramDialect.UNKNOWN
        assert not result.changed

    def test_empty_source(self, normalizer):
        result = normalizer.normalize_document("")
        assert result.corrected == ""
        assert result.dialect == DiagramDialect.UNKNOWN

    def test_detect_dialect_skips_directives(self):
        source = "%%{init: {}}%%\n%% a comment\n\nclassDiagram\nclass A"
        assert detect_dialect(source) == DiagramDialect.CLASS
        assert detect_dialect("pie title Pets") == DiagramDialect.UNKNOWN

    def test_analyze_reports_dialect(self, normalizer):
        document = normalizer.analyze("```mermaid\nerd\nA ||--o{ B : places\n```")
        assert document.dialect == DiagramDialect.ER


class TestEntityRelationship:
    """ER attribute repairs."""

    def test_comma_separated_attributes_are_split(self, normalizer):
        result = normalizer.normalize_document("erDiagram\nCUSTOMER {\n  int id PK, string name\n}")

        assert result.corrected == "erDiagram\nCUSTOMER {\n  int id PK\n  string name\n}"
        assert result.applied_rules == ["er_split_attributes"]

    def test_key_lists_stay_on_their_attribute(self, normalizer):
        source = "erDiagram\nORDER {\n  int customer_id PK, FK\n}"
        assert normalizer.normalize(source) == source

    def test_sql_constraints_become_key_markers(self, normalizer):
        source = (
            "erDiagram\nUSER {\n"
            "  int id PRIMARY KEY NOT NULL\n"
            "  varchar(255) email UNIQUE DEFAULT 'x'\n"
            "  int org_id REFERENCES org(id)\n"
            "}"
        )
        result = normalizer.normalize_document(source)

        assert result.corrected == (
            "erDiagram\nUSER {\n"
            "  int id PK\n"
            "  varchar(255) email UK\n"
            "  int org_id FK\n"
            "}"
        )
        assert result.applied_rules == ["er_sql_constraints"]

    def test_bare_attributes_get_default_type(self, normalizer):
        corrected = normalizer.normalize("erDiagram\nUSER {\n  email\n  id PK\n}")
        assert corrected == "erDiagram\nUSER {\n  string email\n  string id PK\n}"

    def test_relationship_lines_are_untouched(self, normalizer):
        source = "erDiagram\nCUSTOMER ||--o{ ORDER : places"
        assert normalizer.normalize(source) == source


class TestSequenceAndMindmap:
    """Small single-rule dialects."""

    @pytest.mark.parametrize("spelling", ["auto-number", "AutoNumber", "auto number"])
    def test_autonumber_spelling(self, normalizer, spelling):
        corrected = normalizer.normalize(f"sequenceDiagram\n{spelling}\nA->>B: hi")
        assert corrected == "sequenceDiagram\nautonumber\nA->>B: hi"

    def test_correct_autonumber_is_not_recorded(self, normalizer):
        result = normalizer.normalize_document("sequenceDiagram\nautonumber\nA->>B: hi")
        assert result.applied_rules == []

    def test_mindmap_root_moves_to_own_line(self, normalizer):
        result = normalizer.normalize_document("mindmap Root topic\n  Child A\n  Child B")

        assert result.corrected == "mindmap\n  Root topic\n    Child A\n    Child B"
        assert result.applied_rules == ["mindmap_root_newline"]

    def test_mindmap_root_stays_above_deeper_children(self, normalizer):
        corrected = normalizer.normalize("mindmap Root\n    Child\n      Leaf")
        assert corrected == "mindmap\n  Root\n      Child\n        Leaf"

    def test_mindmap_child_named_mindmap_is_untouched(self, normalizer):
        source = "mindmap\n  Tools\n    mindmap editors"
        result = normalizer.normalize_document(source)

        assert result.corrected == source
        assert result.applied_rules == []


class TestRuleBookkeeping:
    """Custom rules, failures and idempotence."""

    def test_failing_rule_is_skipped(self, normalizer):
        def explode(source):
            raise RuntimeError("broken rule")

        normalizer.add_rule(DiagramDialect.SEQUENCE, DiagramRule("explode", re.compile("A"), explode))
        result = normalizer.normalize_document("sequenceDiagram\nA->>B: hi")

        assert result.corrected == "sequenceDiagram\nA->>B: hi"
        assert "explode" not in result.applied_rules

    def test_custom_rule_runs_last(self, normalizer):
        rule = DiagramRule("shout", re.compile("hi"), lambda source: source.replace("hi", "HI"))
        normalizer.add_rule(DiagramDialect.SEQUENCE, rule)

        result = normalizer.normalize_document("sequenceDiagram\nauto-number\nA->>B: hi")

        assert result.applied_rules == ["sequence_autonumber", "shout"]
        assert result.corrected.endswith("A->>B: HI")

    @pytest.mark.parametrize("source", [
        "classDiagram\ninterface Shape {\n  +area() float\n}",
        'classDiagram\nclass "Order Item" {\n  +int qty\n}\nCustomer --> "Order Item"',
        "classDiagram\nclass A {\n  +x\n} class B {\n  +y\n}",
        "graph TD\nA[Start here] --> B(Do work)",
        "graph TD\nA[Call printf(x, y)] --> B",
        "A --> B",
        "erDiagram\nUSER {\n  int id PRIMARY KEY, email\n}",
        "```mermaid\nsequenceDiagram\nauto-number\n```",
        "mindmap Root topic\n  Child A\n  Child B",
        "classDiagram\ninterface Order Item {\n  +place()\n}\nCustomer --> Order Item",
        "classDiagram\nclass Shape {\n  abstract area() double\n}",
    ])
    def test_normalization_is_idempotent(self, normalizer, source):
        once = normalizer.normalize(source)
        assert normalizer.normalize(once) == once
