"""
EPUB translation through LLM backends.

The public entry point is :func:`translate_epub_file`; the pieces it is built
from (extractor, grouper, reconciler, rewriter, orchestrator) live under
``epub_translator.core``.
"""

__version__ = "1.0.0"
