"""
Contract templates rendered with Jinja2.

Templates declare their variables up front. Registration rejects
templates that fail to compile or that reference undeclared variables;
rendering rejects missing required variables. Dotted variable names
(``client.name``) address nested values.
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Protocol

import jinja2
from jinja2 import StrictUndefined, meta
from pydantic import BaseModel, Field

from accord_engine.common.exceptions import TemplateError, ValidationError
from accord_engine.common.models import utcnow

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "JPY": "¥", "KRW": "₩"}


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"
    ARRAY = "array"


class TemplateVariable(BaseModel):
    name: str
    type: VariableType = VariableType.STRING
    label: str = ""
    description: Optional[str] = None
    required: bool = True
    default: Any = None
    options: list[str] = Field(default_factory=list)


class ContractTemplate(BaseModel):
    id: str
    name: str
    description: str = ""
    category: str = "custom"
    content: str
    variables: list[TemplateVariable] = Field(default_factory=list)
    default_expiry_days: Optional[int] = None
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True
    version: int = 1
    created_at: datetime = Field(default_factory=utcnow)


class TemplateRenderer(Protocol):
    def get(self, template_id: str) -> ContractTemplate: ...

    def render(self, template_id: str, variables: dict[str, Any]) -> str: ...


# ── Filters ──


def currency(amount: Any, code: str = "USD") -> str:
    value = float(amount)
    symbol = CURRENCY_SYMBOLS.get(code.upper())
    if symbol:
        return f"{symbol}{value:,.2f}"
    return f"{value:,.2f} {code.upper()}"


def format_date(value: Any, style: str = "long") -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, date):
        raise TypeError(f"format_date expects a date, got {type(value).__name__}")
    if style == "short":
        return value.strftime("%Y-%m-%d")
    return f"{value:%B} {value.day}, {value.year}"


# ── Variable helpers ──


def _lookup(values: dict[str, Any], dotted: str) -> tuple[bool, Any]:
    """Find a value by flat dotted key first, then by nested path."""
    if dotted in values:
        return True, values[dotted]
    current: Any = values
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return False, None
        current = current[part]
    return True, current


def _nest(values: dict[str, Any]) -> dict[str, Any]:
    """Expand flat dotted keys into nested dicts for the template context."""
    context: dict[str, Any] = {}
    for key, value in values.items():
        parts = key.split(".")
        target = context
        for part in parts[:-1]:
            existing = target.get(part)
            if not isinstance(existing, dict):
                existing = {}
                target[part] = existing
            target = existing
        if isinstance(value, dict) and isinstance(target.get(parts[-1]), dict):
            target[parts[-1]].update(value)
        else:
            target[parts[-1]] = value
    return context


class JinjaTemplateRenderer:
    """Registry of contract templates rendered with a strict Jinja2 environment."""

    def __init__(self, templates: Optional[list[ContractTemplate]] = None):
        self.env = jinja2.Environment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
        )
        self.env.filters["currency"] = currency
        self.env.filters["format_date"] = format_date
        self._templates: dict[str, ContractTemplate] = {}
        self._compiled: dict[str, jinja2.Template] = {}
        for template in templates or []:
            self.register(template)

    def register(self, template: ContractTemplate) -> ContractTemplate:
        try:
            ast = self.env.parse(template.content)
            compiled = self.env.from_string(template.content)
        except jinja2.TemplateSyntaxError as exc:
            raise TemplateError(
                f"Template {template.id} does not compile: {exc.message} (line {exc.lineno})"
            ) from exc

        declared = {v.name.split(".")[0] for v in template.variables}
        undeclared = sorted(meta.find_undeclared_variables(ast) - declared)
        if undeclared:
            raise ValidationError(
                f"Template {template.id} references undeclared variables: {', '.join(undeclared)}",
                fields=[f"variables.{name}" for name in undeclared],
            )

        self._templates[template.id] = template
        self._compiled[template.id] = compiled
        logger.info("Template registered: %s v%d", template.id, template.version)
        return template

    def get(self, template_id: str) -> ContractTemplate:
        template = self._templates.get(template_id)
        if template is None or not template.is_active:
            raise TemplateError(f"Template {template_id} not found")
        return template

    def list_templates(self, active_only: bool = True) -> list[ContractTemplate]:
        return [t for t in self._templates.values() if t.is_active or not active_only]

    def resolve_variables(self, template: ContractTemplate, variables: dict[str, Any]) -> dict[str, Any]:
        """Apply defaults and check required variables; returns the flat value map."""
        resolved = dict(variables)
        missing = []
        for var in template.variables:
            found, value = _lookup(resolved, var.name)
            if found and value is not None:
                continue
            if var.default is not None:
                resolved[var.name] = var.default
            elif var.required:
                missing.append(var.name)
        if missing:
            raise ValidationError(
                f"Missing required template variables: {', '.join(missing)}",
                fields=[f"variables.{name}" for name in missing],
            )
        return resolved

    def render(self, template_id: str, variables: dict[str, Any]) -> str:
        template = self.get(template_id)
        resolved = self.resolve_variables(template, variables)
        try:
            return self._compiled[template_id].render(**_nest(resolved))
        except jinja2.UndefinedError as exc:
            raise TemplateError(f"Template {template_id} references an undefined value: {exc.message}") from exc
        except (TypeError, ValueError) as exc:
            raise TemplateError(f"Template {template_id} failed to render: {exc}") from exc


def default_templates() -> list[ContractTemplate]:
    """Built-in templates available to every deployment."""
    return [
        ContractTemplate(
            id="nda-standard",
            name="Non-Disclosure Agreement",
            description="Standard NDA for protecting confidential information",
            category="nda",
            content=(
                "NON-DISCLOSURE AGREEMENT\n\n"
                "This Agreement is entered into as of {{ effective_date | format_date }} between "
                "{{ disclosing_party.name }} (the Disclosing Party) and "
                "{{ receiving_party.name }} (the Receiving Party).\n\n"
                "The Receiving Party will hold Confidential Information in strict confidence "
                "and use it solely for the purpose of {{ purpose }}.\n\n"
                "This Agreement remains in effect for {{ duration_years }} years."
            ),
            variables=[
                TemplateVariable(name="effective_date", type=VariableType.DATE, label="Effective Date"),
                TemplateVariable(name="disclosing_party.name", label="Disclosing Party"),
                TemplateVariable(name="receiving_party.name", label="Receiving Party"),
                TemplateVariable(name="purpose", label="Purpose"),
                TemplateVariable(
                    name="duration_years", type=VariableType.NUMBER,
                    label="Duration (years)", required=False, default=2,
                ),
            ],
            default_expiry_days=30,
            tags=["nda", "confidentiality"],
        ),
        ContractTemplate(
            id="influencer-agreement",
            name="Influencer Marketing Agreement",
            description="Standard agreement for influencer marketing campaigns",
            category="influencer",
            content=(
                "INFLUENCER MARKETING AGREEMENT\n\n"
                "Client: {{ client.name }}\n"
                "Influencer: {{ influencer.name }}\n\n"
                "Campaign: {{ campaign_name }}, {{ start_date | format_date }} to "
                "{{ end_date | format_date }}.\n\n"
                "Deliverables:\n"
                "{% for item in deliverables %}- {{ item }}\n{% endfor %}\n"
                "Total compensation: {{ compensation | currency(currency_code) }}.\n\n"
                "{% if unlimited_usage %}The Client receives unlimited usage rights to all content."
                "{% else %}The Client may use the content for {{ usage_months }} months after publication."
                "{% endif %}\n\n"
                "Either party may terminate with {{ termination_days }} days written notice."
            ),
            variables=[
                TemplateVariable(name="client.name", label="Client Name"),
                TemplateVariable(name="influencer.name", label="Influencer Name"),
                TemplateVariable(name="campaign_name", label="Campaign Name"),
                TemplateVariable(name="start_date", type=VariableType.DATE, label="Start Date"),
                TemplateVariable(name="end_date", type=VariableType.DATE, label="End Date"),
                TemplateVariable(name="deliverables", type=VariableType.ARRAY, label="Deliverables"),
                TemplateVariable(name="compensation", type=VariableType.NUMBER, label="Compensation"),
                TemplateVariable(name="currency_code", label="Currency", required=False, default="USD"),
                TemplateVariable(
                    name="unlimited_usage", type=VariableType.BOOLEAN,
                    label="Unlimited Usage Rights", required=False, default=False,
                ),
                TemplateVariable(
                    name="usage_months", type=VariableType.NUMBER,
                    label="Usage Months", required=False, default=12,
                ),
                TemplateVariable(
                    name="termination_days", type=VariableType.NUMBER,
                    label="Termination Notice Days", required=False, default=30,
                ),
            ],
            default_expiry_days=30,
            tags=["influencer", "marketing", "campaign"],
        ),
    ]
