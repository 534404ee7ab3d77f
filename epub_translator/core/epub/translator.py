"""
EPUB translation orchestration

Coordinates a whole run: load the archive, translate every markup document
through the per-document pipeline, update the package metadata, apply the
optional layout conversion and write the output archive.
"""
import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from lxml import etree
from tqdm.auto import tqdm

from epub_translator.config import DEFAULT_SOURCE_LANGUAGE, NAMESPACES, SUPPORTED_LANGUAGES, TranslationConfig
from epub_translator.core.concurrency.gate import ConcurrencyGate
from epub_translator.core.llm.base import LLMProvider
from epub_translator.core.llm.factory import create_llm_provider
from .container import EpubArchive
from .events import EventBus
from .language import detect_source_language
from .layout import applies_to, convert_vertical_to_horizontal, detect_vertical
from .pipeline import (
    CancellationToken, DocumentPipeline, DocumentResult, DocumentState,
    PipelineContext, count_translatable_chars,
)

logger = logging.getLogger(__name__)


@dataclass
class TranslationSummary:
    """What one run did, reported by the CLI at the end."""
    input_path: str
    output_path: str
    source_language: str
    target_language: str
    format_only: bool = False
    documents_total: int = 0
    documents_translated: int = 0
    documents_failed: int = 0
    documents_cancelled: int = 0
    failed_documents: List[str] = field(default_factory=list)
    fragments_total: int = 0
    fragments_translated: int = 0
    fragments_unresolved: int = 0
    backend_calls: int = 0
    cache_hits: int = 0
    single_retries: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    layout_changes: int = 0
    vertical_detected: bool = False
    cancelled: bool = False
    auth_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.auth_error is None and not self.cancelled

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def translate_epub_file(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    config: TranslationConfig,
    provider: Optional[LLMProvider] = None,
    log_callback: Optional[Callable[[str, str], None]] = None,
    progress_callback: Optional[Callable[[float], None]] = None,
    cancellation: Optional[CancellationToken] = None,
    event_bus: Optional[EventBus] = None,
) -> TranslationSummary:
    """
    Translate an EPUB file.

    Args:
        input_path: Path to input EPUB
        output_path: Path to output EPUB
        config: Run settings (languages, backend, batching, concurrency)
        provider: Backend adapter; created from ``config`` when omitted and
            closed at the end of the run in that case
        log_callback: ``(key, message)`` sink
        progress_callback: Receives a non-decreasing percentage (0-100)
        cancellation: Token that stops new dispatches when set
        event_bus: Receives pipeline events

    Returns:
        TranslationSummary of the run

    Raises:
        ArchiveError: the input cannot be read as an EPUB or the output cannot be written
    """
    cancellation = cancellation or CancellationToken()

    def log(key: str, message: str) -> None:
        if log_callback:
            log_callback(key, message)
        else:
            logger.info(message)

    archive = await EpubArchive.load(input_path)
    documents = archive.markup_documents()
    log("epub_loaded", f"Loaded '{input_path}': {len(archive)} entries, {len(documents)} markup documents")

    if config.detects_source_language:
        config = _resolve_source_language(archive, config, log)

    summary = TranslationSummary(
        input_path=str(input_path), output_path=str(output_path),
        source_language=config.source_language, target_language=config.target_language,
        format_only=config.is_format_only, documents_total=len(documents),
    )

    convert_layout = config.convert_to_horizontal
    if not convert_layout and config.detect_vertical:
        report = detect_vertical(archive)
        summary.vertical_detected = report.is_vertical
        if report.is_vertical:
            convert_layout = True
            log("vertical_detected",
                f"Vertical layout found in {', '.join(report.entries)}: converting to horizontal")

    if config.is_format_only:
        log("format_only", "Source and target language are the same: no translation, format conversion only")
    else:
        await _translate_documents(
            archive, documents, config, summary, provider,
            log_callback, progress_callback, cancellation, event_bus,
        )
        _update_opf_language(archive, config.target_language)

    if convert_layout:
        summary.layout_changes = _convert_layout(archive)
        log("layout_converted", f"Vertical to horizontal conversion: {summary.layout_changes} changes")

    await archive.save(output_path)
    summary.cancelled = cancellation.is_cancelled
    log("epub_save_success", f"Translated (Full/Partial) EPUB saved: '{output_path}'")
    return summary


def _resolve_source_language(archive: EpubArchive, config: TranslationConfig,
                             log: Callable[[str, str], None]) -> TranslationConfig:
    """Replace an 'auto' source language with the one detected in the book."""
    detected = detect_source_language(archive)
    if detected is None:
        fallback = DEFAULT_SOURCE_LANGUAGE if DEFAULT_SOURCE_LANGUAGE in SUPPORTED_LANGUAGES else 'en'
        log("language_undetected", f"Could not detect the source language, assuming '{fallback}'")
        detected = fallback
    else:
        log("language_detected", f"Detected source language: {detected}")
    return dataclasses.replace(config, source_language=detected)


async def _translate_documents(
    archive: EpubArchive,
    documents: List[str],
    config: TranslationConfig,
    summary: TranslationSummary,
    provider: Optional[LLMProvider],
    log_callback: Optional[Callable],
    progress_callback: Optional[Callable],
    cancellation: CancellationToken,
    event_bus: Optional[EventBus],
) -> None:
    owns_provider = provider is None
    if owns_provider:
        provider = create_llm_provider(
            config.llm_provider,
            api_key=config.resolved_api_key,
            model=config.model,
            api_endpoint=config.api_endpoint,
        )

    progress_bar = None
    if progress_callback is None and log_callback is None:
        progress_bar = tqdm(total=100, desc="Translating EPUB", unit="%",
                            bar_format="{l_bar}{bar}| {n:.0f}/{total_fmt}%")

        def progress_callback(percentage: float) -> None:
            progress_bar.update(percentage - progress_bar.n)

    context = PipelineContext.from_config(
        config, provider,
        cancellation=cancellation,
        log_callback=log_callback,
        progress_callback=progress_callback,
        event_bus=event_bus,
    )
    pipeline = DocumentPipeline(context)

    try:
        texts = {name: archive.read_text(name) for name in documents}

        # Measured up front so the percentage never moves backwards
        context.total_chars = sum(count_translatable_chars(texts[name], name) for name in documents)
        context.precounted = True
        if log_callback:
            log_callback("epub_phase_start",
                         f"Translating {len(documents)} documents ({context.total_chars} characters) "
                         f"with {provider.name}")

        document_gate = ConcurrencyGate(config.concurrent_documents)
        results: List[DocumentResult] = await _gather_documents(document_gate, pipeline, texts)

        for result in results:
            if result.state == DocumentState.FAILED:
                summary.failed_documents.append(result.name)
                continue
            if result.fragment_count == 0:
                continue
            # Serialized XHTML declares utf-8; other markup keeps its encoding
            encoding = 'utf-8' if result.markup.startswith('<?xml') else None
            archive.set_text(result.name, result.markup, encoding=encoding)

        if not cancellation.is_cancelled and progress_callback and context.last_progress < 100:
            context.last_progress = 100.0
            progress_callback(100.0)
    finally:
        if progress_bar is not None:
            progress_bar.close()
        if owns_provider:
            await provider.close()

    stats = context.stats
    summary.documents_translated = stats.documents_translated
    summary.documents_failed = stats.documents_failed
    summary.documents_cancelled = stats.documents_cancelled
    summary.fragments_total = stats.fragments_total
    summary.fragments_translated = stats.fragments_translated
    summary.fragments_unresolved = stats.fragments_unresolved
    summary.backend_calls = stats.backend_calls
    summary.cache_hits = stats.cache_hits
    summary.single_retries = stats.single_retries
    summary.prompt_tokens = stats.prompt_tokens
    summary.completion_tokens = stats.completion_tokens
    if context.auth_error is not None:
        summary.auth_error = context.auth_error.message


async def _gather_documents(gate: ConcurrencyGate, pipeline: DocumentPipeline,
                            texts: Dict[str, str]) -> List[DocumentResult]:
    return await asyncio.gather(*(
        gate.run(pipeline.translate_document, markup, name)
        for name, markup in texts.items()
    ))


def _update_opf_language(archive: EpubArchive, target_language: str) -> None:
    """Set dc:language of the package document to the target language."""
    opf_name = archive.find_opf()
    if opf_name is None:
        logger.warning("No OPF package document found, language metadata left unchanged")
        return

    try:
        parser = etree.XMLParser(remove_blank_text=False, resolve_entities=False)
        opf_root = etree.fromstring(archive.read_bytes(opf_name), parser)
    except etree.XMLSyntaxError as e:
        logger.warning(f"Cannot parse {opf_name}, language metadata left unchanged: {e}")
        return

    metadata = opf_root.find('.//opf:metadata', namespaces=NAMESPACES)
    if metadata is None:
        return
    lang_el = metadata.find('.//dc:language', namespaces=NAMESPACES)
    if lang_el is None:
        lang_el = etree.SubElement(metadata, f"{{{NAMESPACES['dc']}}}language")
    lang_el.text = target_language.lower()[:2]

    archive.set_bytes(opf_name, etree.tostring(opf_root, encoding='utf-8', xml_declaration=True))
    logger.debug(f"{opf_name}: dc:language set to {lang_el.text}")


def _convert_layout(archive: EpubArchive) -> int:
    """Apply vertical to horizontal conversion to every stylesheet, package and markup entry."""
    total = 0
    for name in archive.names():
        if not applies_to(name):
            continue
        text = archive.read_text(name)
        converted, changes = convert_vertical_to_horizontal(text)
        if changes:
            archive.set_text(name, converted)
            count = sum(changes.values())
            total += count
            logger.debug(f"{name}: {count} layout changes")
    return total
