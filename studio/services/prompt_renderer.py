"""
Prompt Renderer
Substitutes {{placeholders}} in a prompt template with variable values and product facts.

Pure functions only: no database or network access, so previews and
generation render identical text for identical input.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

# {{name}} placeholders, plus the single-brace tokens older image types use
PLACEHOLDER_PATTERN = re.compile(
    r"\{\{\s*(\w+)\s*\}\}|(?<!\{)\{(product_name|product_title|category|asin)\}(?!\})"
)

# Placeholder names that fall back to a product fact when no value is supplied
FACT_ALIASES: Dict[str, str] = {
    "title": "title",
    "product_title": "title",
    "product_name": "title",
    "item_name": "title",
    "category": "category",
    "product_category": "category",
    "asin": "external_id",
    "product_asin": "external_id",
    "external_id": "external_id",
}

# Source selectors allowed on auto-filled variable definitions
AUTO_FILL_SOURCES: Dict[str, str] = {
    "product.title": "title",
    "product.category": "category",
    "product.external_id": "external_id",
    "product.asin": "external_id",
}


@dataclass(frozen=True)
class ProductFacts:
    """Product attributes a template may copy in."""
    title: str = ""
    category: Optional[str] = None
    external_id: Optional[str] = None

    def get(self, fact: str) -> str:
        return getattr(self, fact, None) or ""


@dataclass(frozen=True)
class VariableSpec:
    """Renderer view of a template variable definition."""
    name: str
    label: str = ""
    kind: str = "text"
    required: bool = True
    default: Optional[str] = None
    auto_source: Optional[str] = None
    options: Sequence[str] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, variable) -> "VariableSpec":
        return cls(
            name=variable.name,
            label=variable.label or variable.name,
            kind=variable.kind,
            required=bool(variable.required),
            default=variable.default,
            auto_source=variable.auto_source,
            options=tuple(variable.options or ()),
        )


@dataclass
class RenderedPrompt:
    text: str
    missing: List[VariableSpec] = field(default_factory=list)
    values: Dict[str, str] = field(default_factory=dict)

    @property
    def missing_labels(self) -> List[str]:
        return [v.label or v.name for v in self.missing]


def resolve_values(
    values: Optional[Mapping[str, Optional[str]]],
    facts: ProductFacts,
    variables: Sequence[VariableSpec] = (),
) -> Dict[str, str]:
    """Merge supplied values with auto-filled facts and variable defaults."""
    resolved = {name: str(value) for name, value in (values or {}).items() if value}

    for variable in variables:
        if resolved.get(variable.name):
            continue
        value = ""
        if variable.kind == "auto" and variable.auto_source in AUTO_FILL_SOURCES:
            value = facts.get(AUTO_FILL_SOURCES[variable.auto_source])
        if not value and variable.default:
            value = variable.default
        if value:
            resolved[variable.name] = value

    return resolved


def render_prompt(
    template: str,
    values: Optional[Mapping[str, Optional[str]]] = None,
    facts: Optional[ProductFacts] = None,
    variables: Sequence[VariableSpec] = (),
    custom_instructions: Optional[str] = None,
) -> RenderedPrompt:
    """
    Render a prompt template.

    Unknown placeholders become empty strings. Required variables that end up
    empty are reported in `missing`; rendering never fails because of them.
    Custom instructions are appended after substitution, verbatim.
    """
    facts = facts or ProductFacts()
    resolved = resolve_values(values, facts, variables)

    def lookup(name: str) -> str:
        value = resolved.get(name, "")
        if not value and name in FACT_ALIASES:
            value = facts.get(FACT_ALIASES[name])
        return value

    def substitute(match: "re.Match[str]") -> str:
        return lookup(match.group(1) or match.group(2))

    text = PLACEHOLDER_PATTERN.sub(substitute, template or "")
    missing = [v for v in variables if v.required and not lookup(v.name)]

    return RenderedPrompt(text=append_instructions(text, custom_instructions), missing=missing, values=resolved)


def append_instructions(prompt: str, custom_instructions: Optional[str] = None) -> str:
    """Append per-call operator instructions to a rendered prompt."""
    custom = (custom_instructions or "").strip()
    if not custom:
        return prompt
    if not prompt:
        return custom
    return f"{prompt}\n\nAdditional instructions: {custom}"


__all__ = [
    "ProductFacts",
    "VariableSpec",
    "RenderedPrompt",
    "resolve_values",
    "render_prompt",
    "append_instructions",
    "FACT_ALIASES",
]
