"""
Prompts for translation service.
"""
from core.validators import validate_required_field

TRANSLATION_PROMPT_TEMPLATE = "Translate the following text from {source_language} to {target_language}:\n\n{text}"

_REQUIRED_PLACEHOLDERS = ("{source_language}", "{target_language}", "{text}")


class PromptBuilder:
    """
    Renders the translation instruction.

    Rendering is a pure function of (text, source_language, target_language),
    so the same inputs always produce the same prompt.
    """

    def __init__(self, template: str = TRANSLATION_PROMPT_TEMPLATE):
        missing = [p for p in _REQUIRED_PLACEHOLDERS if p not in template]
        if missing:
            raise ValueError(f"Prompt template is missing placeholders: {', '.join(missing)}")
        try:
            template.format(source_language="", target_language="", text="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"Prompt template has unsupported placeholders: {e}") from e
        self.template = template

    def render(self, text: str, source_language: str = "Chinese", target_language: str = "English") -> str:
        """
        Generate translation prompt.

        The text is embedded verbatim; only emptiness is checked.

        Raises:
            InvalidRequest: If text is empty/whitespace or a language is empty
        """
        validate_required_field(text, "text", "Translation")
        source = validate_required_field(source_language, "sourceLanguage", "Translation").strip()
        target = validate_required_field(target_language, "targetLanguage", "Translation").strip()
        return self.template.format(source_language=source, target_language=target, text=text)


_default_builder = PromptBuilder()


def get_translation_prompt(text: str, source_language: str = "Chinese", target_language: str = "English") -> str:
    """Render a prompt with the default template."""
    return _default_builder.render(text, source_language, target_language)
