"""
Prompt templates for batch and single-fragment translation.
"""

from epub_translator.config import language_name

BATCH_SYSTEM_PROMPT = (
    "You are a professional literary translator. "
    "You output only the translation, never explanations, notes or commentary."
)


def build_batch_prompt(batch_text: str, source_lang: str, target_lang: str, expected_count: int) -> str:
    """Instruction for translating ``expected_count`` paragraphs separated by blank lines."""
    source = language_name(source_lang)
    target = language_name(target_lang)
    return (
        f"You are an expert {source} to {target} translator.\n\n"
        f"Translate the following {expected_count} paragraph(s) into {target}. Output rules:\n\n"
        f"1. Separate translated paragraphs with exactly one blank line\n"
        f"2. Return exactly {expected_count} translated paragraph(s), in the original order\n"
        f"3. Return only the translation, without any explanation, note or numbering\n"
        f"4. Proper nouns may be transliterated\n\n"
        f"Source text:\n{batch_text}\n\n"
        f"Translation:"
    )


def build_single_prompt(text: str, source_lang: str, target_lang: str) -> str:
    """Instruction for translating one passage on its own."""
    source = language_name(source_lang)
    target = language_name(target_lang)
    return (
        f"Translate the following {source} text into {target}. "
        f"Output only the translation, without any explanation.\n\n"
        f"{text}"
    )
