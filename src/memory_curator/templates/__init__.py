"""Output templates for command and context text."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from memory_curator.time_service import TimeService

# Set up Jinja2 environment for output templates
TEMPLATES_DIR = Path(__file__).parent
OUTPUT_TEMPLATES_DIR = TEMPLATES_DIR / "outputs"

output_env = Environment(
    loader=FileSystemLoader(OUTPUT_TEMPLATES_DIR),
    autoescape=select_autoescape(),
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
)

# Add custom filters for time formatting
output_env.filters["format_time_age"] = TimeService.format_age
output_env.filters["format_time_iso"] = TimeService.format_iso


def pluralize(count: int, singular: str = "", plural: str = "s") -> str:
    """Simple pluralization filter."""
    if count == 1:
        return singular
    return plural


def format_score(value: float, digits: int = 2) -> str:
    return f"{value:.{digits}f}"


output_env.filters["pluralize"] = pluralize
output_env.filters["score"] = format_score


def render_output(name: str, **context) -> str:
    """
    Render an output template.

    Args:
        name: Template name without suffix (e.g., 'memory_context')
        **context: Variables to pass to the template

    Returns:
        Rendered output string

    Raises:
        jinja2.TemplateNotFound: If the template doesn't exist (this is fatal)
    """
    # Always inject current time for temporal grounding
    context.setdefault("current_time", TimeService.now())

    template = output_env.get_template(f"{name}_output.j2")
    return template.render(**context)
