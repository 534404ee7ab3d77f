"""
EPUB translation pipeline.

Stages, leaves first: fragment extraction (``extractor``), batch grouping
(``grouper``), response reconciliation (``reconciler``), document rewriting
(``rewriter``) and the per-document orchestrator (``pipeline``). The
run-level entry point is ``translator.translate_epub_file``.
"""
