"""Prompt template for Arduino code generation."""

from __future__ import annotations

PROMPT_TEMPLATE = (
    "Generate Arduino code for a {component} that performs the following: {description}. "
    "Ensure the code is complete, includes setup() and loop() functions, defines necessary pins, "
    "and adds clear, concise comments. If the component needs a library (e.g., DHT sensor), "
    "include the #include directive and a note about installing the library."
)


def build_prompt(component: str, description: str) -> str:
    """Render the single prompt sent to the generation model.

    The output depends only on the two arguments, so identical requests
    always produce identical prompts.
    """
    return PROMPT_TEMPLATE.format(component=component, description=description)
