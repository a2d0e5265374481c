"""
Unit-of-Work Schemas
One (product, intent) generation as snapshotted at job acceptance, and its outcome.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel

from studio.services.prompt_renderer import ProductFacts, VariableSpec
from studio.services.reference_resolver import ReferenceHints


class VariableSnapshot(BaseModel):
    """Frozen copy of a template variable definition."""
    name: str
    label: str = ""
    kind: str = "text"
    required: bool = True
    default: Optional[str] = None
    auto_source: Optional[str] = None
    options: List[str] = []

    @classmethod
    def from_model(cls, variable) -> "VariableSnapshot":
        spec = VariableSpec.from_model(variable)
        return cls(
            name=spec.name,
            label=spec.label,
            kind=spec.kind,
            required=spec.required,
            default=spec.default,
            auto_source=spec.auto_source,
            options=list(spec.options),
        )

    def to_spec(self) -> VariableSpec:
        return VariableSpec(
            name=self.name,
            label=self.label or self.name,
            kind=self.kind,
            required=self.required,
            default=self.default,
            auto_source=self.auto_source,
            options=tuple(self.options),
        )


class UnitOfWork(BaseModel):
    """Everything the executor needs; no database reads of product or intent."""
    product_id: str
    intent_id: str
    intent_name: str = ""
    media_type: str = "image"

    # Base template: per-product override or the intent template
    prompt_template: str
    custom_instructions: Optional[str] = None
    variables: List[VariableSnapshot] = []
    variable_values: Dict[str, str] = {}

    # Product facts
    product_title: str = ""
    product_category: Optional[str] = None
    product_external_id: Optional[str] = None

    # Reference hints, highest priority first
    reference_asset_id: Optional[str] = None
    base_artifact_id: Optional[str] = None
    parent_artifact_id: Optional[str] = None

    job_id: Optional[str] = None
    actor_id: str = "system"

    @property
    def label(self) -> str:
        """Product identifier used in job error entries."""
        return self.product_external_id or self.product_id[:8]

    def facts(self) -> ProductFacts:
        return ProductFacts(
            title=self.product_title,
            category=self.product_category,
            external_id=self.product_external_id,
        )

    def hints(self) -> ReferenceHints:
        return ReferenceHints(
            reference_asset_id=self.reference_asset_id,
            base_artifact_id=self.base_artifact_id,
            parent_artifact_id=self.parent_artifact_id,
        )

    def variable_specs(self) -> List[VariableSpec]:
        return [v.to_spec() for v in self.variables]


class UnitResult(BaseModel):
    """Outcome of one unit. Failures carry a readable reason and the failing step."""
    ok: bool
    product_id: str
    intent_id: str
    label: str
    artifact_id: Optional[str] = None
    version: Optional[int] = None
    failure_kind: Optional[str] = None
    reason: Optional[str] = None
    step: Optional[str] = None

    @property
    def log_entry(self) -> str:
        return f"{self.label}: {self.reason}"
